# models.py
# Data contracts for the OODA harness.
# No business logic lives here, only schema and validation.

from enum import Enum, IntEnum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# Tool schema
# ---------------------------------------------------------------------------


class FieldKind(str, Enum):
    """Shape a tool input field must satisfy."""

    STRING = "string"
    TEXT = "text"
    STRING_LIST = "string_list"
    INTEGER = "integer"
    BOOLEAN = "boolean"
    MAPPING = "mapping"


class FieldSpec(BaseModel):
    """One named field of a tool's input or output format."""

    model_config = ConfigDict(frozen=True)

    name: str
    description: str
    kind: FieldKind = FieldKind.STRING
    required: bool = True


class ToolDescriptor(BaseModel):
    """Immutable description of a registered tool. Identity is the name."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1)
    description: str
    description_context: str = ""
    input_format: tuple[FieldSpec, ...] = ()
    output_format: tuple[FieldSpec, ...] = ()

    def field(self, name: str) -> FieldSpec | None:
        for spec in self.input_format:
            if spec.name == name:
                return spec
        return None


# ---------------------------------------------------------------------------
# Round data
# ---------------------------------------------------------------------------


class Action(BaseModel):
    """One validated tool invocation extracted from a model response."""

    model_config = ConfigDict(frozen=True)

    command: str
    input: dict[str, Any] = Field(default_factory=dict)


class ToolResult(BaseModel):
    """Outcome of a round: a success payload or a failure with a reason code."""

    model_config = ConfigDict(frozen=True)

    tool: str
    ok: bool
    payload: dict[str, Any] = Field(default_factory=dict)
    reason: str | None = None
    message: str | None = None

    @classmethod
    def success(cls, tool: str, payload: dict[str, Any]) -> "ToolResult":
        return cls(tool=tool, ok=True, payload=payload)

    @classmethod
    def failure(
        cls,
        tool: str,
        reason: str,
        message: str,
        payload: dict[str, Any] | None = None,
    ) -> "ToolResult":
        return cls(tool=tool, ok=False, reason=reason, message=message, payload=payload or {})


class TurnRecord(BaseModel):
    """Append-only history entry produced after each round."""

    model_config = ConfigDict(frozen=True)

    round: int = Field(..., ge=1)
    prompt: str = Field(..., description="User-side message the model answered.")
    response: str = Field(..., description="Raw completion text.")
    action: Action | None = Field(default=None, description="None when parsing failed.")
    result: ToolResult
    observation: str = Field(default="", description="Result message fed back to the model.")


class TerminationMessage(BaseModel):
    """Payload of the terminal tool."""

    model_config = ConfigDict(frozen=True)

    conclusion: str
    original_question: str = ""


class SessionOutcome(BaseModel):
    """What the session driver hands back to the entry point."""

    model_config = ConfigDict(frozen=True)

    status: Literal["concluded", "budget_exhausted", "upstream_failure"]
    conclusion: str | None = None
    rounds: int = 0
    history: tuple[TurnRecord, ...] = ()
    error: str | None = None


# ---------------------------------------------------------------------------
# Sandbox
# ---------------------------------------------------------------------------


class SandboxStatus(IntEnum):
    OK = 0
    RUNTIME_ERROR = 1
    SYNTAX_ERROR = 2
    POLICY_VIOLATION = 3
    RESOURCE_EXCEEDED = 4


class SandboxResponse(BaseModel):
    """Captured result of one sandbox invocation. Pure data."""

    model_config = ConfigDict(frozen=True)

    status: int
    stdout: str = ""
    stderr: str = ""


# ---------------------------------------------------------------------------
# Lighting
# ---------------------------------------------------------------------------


class Light(BaseModel):
    id: str
    name: str
    on: bool
    brightness: int | None = None
    hue: int | None = None
    saturation: int | None = None
    color_temperature: int | None = None


class Room(BaseModel):
    name: str
    lights: list[str] = Field(default_factory=list)
