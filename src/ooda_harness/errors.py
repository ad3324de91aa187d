# errors.py
# Exception taxonomy for the OODA harness.
#
# ActionError subclasses are recoverable inside the loop: the controller
# folds them back into the conversation. Registry errors are programming
# defects and always propagate.


class HarnessError(Exception):
    """Base class for every error raised by the harness."""


# ---------------------------------------------------------------------------
# Action parsing
# ---------------------------------------------------------------------------


class ActionError(HarnessError):
    """A model response could not be turned into a dispatchable Action."""

    reason = "ActionError"

    def __init__(self, message: str, tool: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.tool = tool


class MalformedResponse(ActionError):
    """Zero, several, or unparsable action blocks in the response."""

    reason = "MalformedResponse"


class UnknownTool(ActionError):
    """The action names a tool absent from the registry."""

    reason = "UnknownTool"


class InvalidToolInput(ActionError):
    """A declared field is missing or does not have the declared shape."""

    reason = "InvalidToolInput"

    def __init__(self, message: str, tool: str | None = None, field: str | None = None) -> None:
        super().__init__(message, tool=tool)
        self.field = field


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


class RegistryError(HarnessError):
    """Invalid registry configuration (duplicates, sealed, terminal count)."""


class RegistryInconsistency(HarnessError):
    """A parsed action names a tool the registry cannot resolve. Always fatal."""


# ---------------------------------------------------------------------------
# Tool execution
# ---------------------------------------------------------------------------


class ToolInvocationFailed(HarnessError):
    """Raised by a tool handler; becomes a failed ToolResult."""

    reason = "ToolInvocationFailed"

    def __init__(self, message: str, payload: dict | None = None) -> None:
        super().__init__(message)
        self.payload = payload or {}


class PolicyViolation(ToolInvocationFailed):
    """A sandbox snippet requested a forbidden capability."""

    reason = "PolicyViolation"


class ResourceExceeded(ToolInvocationFailed):
    """A sandbox snippet ran past its time, memory, or output bound."""

    reason = "ResourceExceeded"


class HueError(ToolInvocationFailed):
    """The lighting bridge rejected a request or could not be reached."""

    reason = "HueError"


# ---------------------------------------------------------------------------
# Upstream model
# ---------------------------------------------------------------------------


class UpstreamUnavailable(HarnessError):
    """The model collaborator failed. `transient` tells whether a retry may help."""

    def __init__(self, message: str, transient: bool = False) -> None:
        super().__init__(message)
        self.transient = transient
