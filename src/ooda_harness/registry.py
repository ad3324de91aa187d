# registry.py
# Tool registry: a closed, sealed set of named capabilities.
#
# Tools are registered while the registry is constructed and the set is
# frozen afterwards. The harness resolves names here and never imports
# tool implementations directly.

from abc import ABC, abstractmethod
from typing import Any, Iterable

import yaml

from ooda_harness.errors import RegistryError, UnknownTool
from ooda_harness.models import ToolDescriptor


# ---------------------------------------------------------------------------
# Tool interface
# ---------------------------------------------------------------------------


class Tool(ABC):
    """A named capability with a declared input format."""

    terminal = False

    @property
    @abstractmethod
    def descriptor(self) -> ToolDescriptor:
        ...

    @property
    def name(self) -> str:
        return self.descriptor.name

    @abstractmethod
    def invoke(self, payload: dict[str, Any]) -> dict[str, Any]:
        """Run the tool on a validated input mapping and return its output mapping."""


class TerminalTool(Tool):
    """A tool whose dispatch ends the session with a final answer."""

    terminal = True


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


class ToolRegistry:
    """
    Fixed mapping of tool name -> Tool.

    Exactly one terminal tool must be present. Once the constructor returns
    the registry is sealed and register() raises.
    """

    def __init__(self, tools: Iterable[Tool]) -> None:
        self._tools: dict[str, Tool] = {}
        self._sealed = False

        for tool in tools:
            self.register(tool)

        terminal = [t.name for t in self._tools.values() if t.terminal]
        if len(terminal) != 1:
            raise RegistryError(
                f"Exactly one terminal tool is required, found {len(terminal)}: {terminal}"
            )
        self._terminal_name = terminal[0]
        self._sealed = True

    def register(self, tool: Tool) -> None:
        if self._sealed:
            raise RegistryError(f"Registry is sealed; cannot register '{tool.name}' mid-session.")
        if tool.name in self._tools:
            raise RegistryError(f"Duplicate tool name: '{tool.name}'.")
        self._tools[tool.name] = tool

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def resolve(self, name: str) -> Tool:
        try:
            return self._tools[name]
        except KeyError:
            raise UnknownTool(f"Tool not found: {name}", tool=name) from None

    def descriptor(self, name: str) -> ToolDescriptor | None:
        tool = self._tools.get(name)
        return tool.descriptor if tool is not None else None

    def names(self) -> list[str]:
        return sorted(self._tools)

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    @property
    def terminal_name(self) -> str:
        return self._terminal_name

    # ------------------------------------------------------------------
    # Catalog rendering
    # ------------------------------------------------------------------

    def describe(self) -> list[ToolDescriptor]:
        """Descriptors sorted by tool name."""
        return [self._tools[name].descriptor for name in self.names()]

    def catalog(self) -> str:
        """YAML rendering of every tool for the in-band tool list."""
        entries = []
        for desc in self.describe():
            entries.append(
                {
                    "name": desc.name,
                    "description": desc.description,
                    "description_context": desc.description_context,
                    "input_format": {
                        f.name: f.description + (" MANDATORY" if f.required else " OPTIONAL")
                        for f in desc.input_format
                    },
                    "output_format": {f.name: f.description for f in desc.output_format},
                }
            )
        return yaml.safe_dump(entries, sort_keys=False, allow_unicode=True, width=1000)
