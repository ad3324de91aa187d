# tools.py
# Tool implementations. The harness reaches them only through the registry
# returned by build_registry() and never calls these classes directly.

from typing import Any, Protocol

from ooda_harness.errors import PolicyViolation, ResourceExceeded, ToolInvocationFailed
from ooda_harness.models import (
    FieldKind,
    FieldSpec,
    Light,
    Room,
    SandboxStatus,
    TerminationMessage,
    ToolDescriptor,
)
from ooda_harness.registry import TerminalTool, Tool, ToolRegistry
from ooda_harness.sandbox import SandboxEngine


class LightDirectory(Protocol):
    """What the lighting tools need from a bridge."""

    def get_all_lights(self) -> list[Light]: ...

    def get_all_rooms(self) -> list[Room]: ...


# ---------------------------------------------------------------------------
# Conclude
# ---------------------------------------------------------------------------


class ConcludeTool(TerminalTool):
    _descriptor = ToolDescriptor(
        name="Conclude",
        description="A tool to terminate a task with a conclusion.",
        description_context=(
            "Use this to terminate the task when you have the final answer to the original "
            "question. The conclusion is given to the user as is."
        ),
        input_format=(
            FieldSpec(
                name="original_question",
                description="The original question that was asked.",
                kind=FieldKind.TEXT,
                required=False,
            ),
            FieldSpec(
                name="conclusion",
                description="The final answer to the original question, in plain text.",
                kind=FieldKind.TEXT,
            ),
        ),
        output_format=(),
    )

    @property
    def descriptor(self) -> ToolDescriptor:
        return self._descriptor

    def invoke(self, payload: dict[str, Any]) -> dict[str, Any]:
        conclusion = payload["conclusion"].strip()
        if not conclusion:
            raise ToolInvocationFailed("The conclusion is empty. Give the final answer as `conclusion`.")
        message = TerminationMessage(
            conclusion=conclusion,
            original_question=(payload.get("original_question") or "").strip(),
        )
        return message.model_dump()


# ---------------------------------------------------------------------------
# SandboxedPython
# ---------------------------------------------------------------------------


def _detail(stderr: str, reason: str) -> str:
    # The engine prefixes its own diagnostics with the reason code.
    return stderr.strip().removeprefix(f"{reason}:").strip()


class SandboxedPythonTool(Tool):
    _descriptor = ToolDescriptor(
        name="SandboxedPython",
        description=(
            "A tool that executes sandboxed Python code. Only stdout and stderr are captured "
            "and made available."
        ),
        description_context=(
            "Use this to compute and transform data. Use print() to output results. "
            "`math` is preloaded. import, open, exec, eval, classes and any file, network "
            "or process access are forbidden."
        ),
        input_format=(
            FieldSpec(name="code", description="The Python code to execute.", kind=FieldKind.TEXT),
        ),
        output_format=(
            FieldSpec(name="status", description="0 on success, nonzero otherwise."),
            FieldSpec(name="stdout", description="The stdout of the executed Python code."),
            FieldSpec(name="stderr", description="The stderr output of the Python code execution."),
        ),
    )

    def __init__(self, engine: SandboxEngine) -> None:
        self._engine = engine

    @property
    def descriptor(self) -> ToolDescriptor:
        return self._descriptor

    def invoke(self, payload: dict[str, Any]) -> dict[str, Any]:
        response = self._engine.run(payload["code"])
        output = response.model_dump()

        if response.status == SandboxStatus.POLICY_VIOLATION:
            raise PolicyViolation(_detail(response.stderr, PolicyViolation.reason), payload=output)
        if response.status == SandboxStatus.RESOURCE_EXCEEDED:
            raise ResourceExceeded(
                _detail(response.stderr, ResourceExceeded.reason) or "output limit exceeded",
                payload=output,
            )
        return output


# ---------------------------------------------------------------------------
# Lighting
# ---------------------------------------------------------------------------


class RoomTool(Tool):
    _descriptor = ToolDescriptor(
        name="RoomTool",
        description="A tool to use that the source of truth for the Lights of a Room.",
        description_context=(
            "Use this to fetch the Lights of Rooms. If a filter returns no room, "
            "retry with an empty filter to list every room."
        ),
        input_format=(
            FieldSpec(
                name="room_filter",
                description='The list of Room names (<string>) to get the Lights for, e.g.: ["Kitchen"]. To get all the rooms: []',
                kind=FieldKind.STRING_LIST,
                required=False,
            ),
        ),
        output_format=(
            FieldSpec(
                name="rooms",
                description='A list of Rooms with their Lights IDs, e.g.: [{"name": "Kitchen", "lights": ["1", "2"]}]',
            ),
        ),
    )

    def __init__(self, bridge: LightDirectory) -> None:
        self._bridge = bridge

    @property
    def descriptor(self) -> ToolDescriptor:
        return self._descriptor

    def invoke(self, payload: dict[str, Any]) -> dict[str, Any]:
        wanted = {name.casefold() for name in payload.get("room_filter") or []}
        rooms = [
            room.model_dump()
            for room in self._bridge.get_all_rooms()
            if not wanted or room.name.casefold() in wanted
        ]
        return {"rooms": rooms}


class LightStatusTool(Tool):
    _descriptor = ToolDescriptor(
        name="LightStatusTool",
        description="A tool to use that the source of truth for the Light statuses.",
        description_context="Use this to fetch the Light statuses.",
        input_format=(
            FieldSpec(
                name="light_filter",
                description='The list of Lights IDs (<string>) to get the status for, e.g.: ["1", "2"]. To get all the lights: []',
                kind=FieldKind.STRING_LIST,
                required=False,
            ),
        ),
        output_format=(
            FieldSpec(
                name="lights",
                description=(
                    'A list of Lights with their status. E.g.: [{"id": "1", "name": "Corridor", '
                    '"on": true, "brightness": 126, "hue": 2456, "saturation": 55, '
                    '"color_temperature": 2500}]'
                ),
            ),
        ),
    )

    def __init__(self, bridge: LightDirectory) -> None:
        self._bridge = bridge

    @property
    def descriptor(self) -> ToolDescriptor:
        return self._descriptor

    def invoke(self, payload: dict[str, Any]) -> dict[str, Any]:
        wanted = set(payload.get("light_filter") or [])
        lights = [
            light.model_dump()
            for light in self._bridge.get_all_lights()
            if not wanted or light.id in wanted
        ]
        return {"lights": lights}


# ---------------------------------------------------------------------------
# Registry wiring
# ---------------------------------------------------------------------------


def build_registry(engine: SandboxEngine, bridge: LightDirectory | None = None) -> ToolRegistry:
    """The session's tool set. Lighting tools are registered only when a bridge is given."""
    tools: list[Tool] = [ConcludeTool(), SandboxedPythonTool(engine)]
    if bridge is not None:
        tools.extend([RoomTool(bridge), LightStatusTool(bridge)])
    return ToolRegistry(tools)
