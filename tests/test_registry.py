import pytest
import yaml
from unittest.mock import MagicMock

from ooda_harness.errors import RegistryError, UnknownTool
from ooda_harness.models import ToolDescriptor
from ooda_harness.registry import TerminalTool, ToolRegistry
from ooda_harness.sandbox import SandboxEngine
from ooda_harness.tools import ConcludeTool, RoomTool, SandboxedPythonTool


class AlsoConclude(TerminalTool):
    descriptor = ToolDescriptor(name="AlsoConclude", description="Second terminal tool.")

    def invoke(self, payload):
        return {"conclusion": "x"}


@pytest.fixture
def engine():
    return MagicMock(spec=SandboxEngine)


# ---------------------------------------------------------------------------
# Construction
# ---------------------------------------------------------------------------

def test_registry_requires_a_terminal_tool(engine):
    with pytest.raises(RegistryError, match="found 0"):
        ToolRegistry([SandboxedPythonTool(engine)])


def test_registry_rejects_two_terminal_tools():
    with pytest.raises(RegistryError, match="found 2"):
        ToolRegistry([ConcludeTool(), AlsoConclude()])


def test_registry_rejects_duplicate_names(engine):
    with pytest.raises(RegistryError, match="Duplicate"):
        ToolRegistry([ConcludeTool(), SandboxedPythonTool(engine), SandboxedPythonTool(engine)])


def test_registry_is_sealed_after_construction(engine):
    registry = ToolRegistry([ConcludeTool()])
    with pytest.raises(RegistryError, match="sealed"):
        registry.register(SandboxedPythonTool(engine))
    assert "SandboxedPython" not in registry
    assert len(registry) == 1


# ---------------------------------------------------------------------------
# Lookup and catalog
# ---------------------------------------------------------------------------

def test_resolve_and_descriptor(engine):
    registry = ToolRegistry([ConcludeTool(), SandboxedPythonTool(engine)])
    assert registry.resolve("SandboxedPython").name == "SandboxedPython"
    assert registry.terminal_name == "Conclude"
    assert registry.descriptor("Nope") is None
    with pytest.raises(UnknownTool) as info:
        registry.resolve("Nope")
    assert info.value.tool == "Nope"


def test_catalog_lists_every_tool_sorted(engine):
    registry = ToolRegistry([SandboxedPythonTool(engine), RoomTool(MagicMock()), ConcludeTool()])
    entries = yaml.safe_load(registry.catalog())

    assert [e["name"] for e in entries] == ["Conclude", "RoomTool", "SandboxedPython"]
    conclude = entries[0]
    assert conclude["input_format"]["conclusion"].endswith("MANDATORY")
    assert conclude["input_format"]["original_question"].endswith("OPTIONAL")
    assert set(entries[2]["output_format"]) == {"status", "stdout", "stderr"}
