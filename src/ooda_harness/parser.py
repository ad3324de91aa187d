# parser.py
# Action extraction and schema validation.
#
# Pure functions: no I/O, no display calls, no registry mutation. The same
# text and registry always produce the same Action or the same error.

import re
import textwrap
from typing import Any

import yaml

from ooda_harness.errors import InvalidToolInput, MalformedResponse, UnknownTool
from ooda_harness.models import Action, FieldKind, FieldSpec, ToolDescriptor
from ooda_harness.registry import ToolRegistry

# Fenced block: opening ``` with an optional info string, body, closing ```
# on its own line. Fences may be indented (markdown lists).
_FENCE_RE = re.compile(
    r"^[ \t]*```[ \t]*([\w+-]*)[^\n]*\n(.*?)^[ \t]*```[ \t]*$",
    re.DOTALL | re.MULTILINE,
)

_ACTION_LANGUAGES = frozenset({"", "yaml", "yml"})
_ACTION_KEYS = frozenset({"command", "input"})


# ---------------------------------------------------------------------------
# Stage 1: structural extraction
# ---------------------------------------------------------------------------


def find_action_blocks(text: str) -> list[str]:
    """Return the bodies of every fenced block that may hold an Action."""
    blocks: list[str] = []
    for match in _FENCE_RE.finditer(text):
        language = match.group(1).strip().lower()
        if language in _ACTION_LANGUAGES:
            blocks.append(textwrap.dedent(match.group(2)))
    return blocks


def extract_action(text: str) -> Action:
    """
    Locate the single action block and load it as {command, input}.

    Raises MalformedResponse when there is no block, more than one block,
    or the block is not a well-formed invocation.
    """
    blocks = find_action_blocks(text)
    if not blocks:
        raise MalformedResponse(
            "No Action found. Give exactly one ```yaml block with `command` and `input`."
        )
    if len(blocks) > 1:
        raise MalformedResponse(
            f"Multiple Actions found ({len(blocks)} blocks). Only one Action per response is allowed."
        )

    try:
        data = yaml.safe_load(blocks[0])
    except yaml.YAMLError as exc:
        raise MalformedResponse(f"Invalid YAML in Action: {exc}") from exc

    if not isinstance(data, dict):
        raise MalformedResponse("The Action must be a YAML mapping with `command` and `input`.")

    extra = [str(key) for key in data if key not in _ACTION_KEYS]
    if extra:
        raise MalformedResponse(
            f"The Action cannot have {', '.join(repr(k) for k in extra)} field(s). "
            "Only `command` and `input` are allowed."
        )

    command = data.get("command")
    if not isinstance(command, str) or not command.strip():
        raise MalformedResponse("The Action `command` must be a tool name (string).")

    if "input" not in data:
        raise MalformedResponse("The Action has no `input` field.", tool=command.strip())

    raw_input = data["input"]
    if raw_input is None:
        raw_input = {}
    if not isinstance(raw_input, dict) or not all(isinstance(k, str) for k in raw_input):
        raise MalformedResponse(
            "The Action `input` must be a mapping of field names to values.",
            tool=command.strip(),
        )

    return Action(command=command.strip(), input=dict(raw_input))


# ---------------------------------------------------------------------------
# Stage 2: schema validation
# ---------------------------------------------------------------------------


def _matches(kind: FieldKind, value: Any) -> bool:
    if kind in (FieldKind.STRING, FieldKind.TEXT):
        return isinstance(value, str)
    if kind is FieldKind.STRING_LIST:
        return isinstance(value, list) and all(isinstance(item, str) for item in value)
    if kind is FieldKind.INTEGER:
        return isinstance(value, int) and not isinstance(value, bool)
    if kind is FieldKind.BOOLEAN:
        return isinstance(value, bool)
    if kind is FieldKind.MAPPING:
        return isinstance(value, dict)
    return False


_KIND_HINTS = {
    FieldKind.STRING: "a string",
    FieldKind.TEXT: "text",
    FieldKind.STRING_LIST: 'a list of strings, e.g. ["1", "2"]',
    FieldKind.INTEGER: "an integer",
    FieldKind.BOOLEAN: "true or false",
    FieldKind.MAPPING: "a mapping",
}


def _check_field(descriptor: ToolDescriptor, spec: FieldSpec, payload: dict[str, Any]) -> None:
    value = payload.get(spec.name)
    if value is None:
        if spec.required:
            raise InvalidToolInput(
                f"Missing mandatory field `{spec.name}` for {descriptor.name}.",
                tool=descriptor.name,
                field=spec.name,
            )
        return
    if not _matches(spec.kind, value):
        raise InvalidToolInput(
            f"Field `{spec.name}` of {descriptor.name} must be {_KIND_HINTS[spec.kind]}, "
            f"got {type(value).__name__}.",
            tool=descriptor.name,
            field=spec.name,
        )


def validate_action(action: Action, registry: ToolRegistry) -> Action:
    """Check the action against the named tool's input format. All-or-nothing."""
    descriptor = registry.descriptor(action.command)
    if descriptor is None:
        raise UnknownTool(
            f"Tool not found: {action.command}. Available tools: {', '.join(registry.names())}.",
            tool=action.command,
        )

    for spec in descriptor.input_format:
        _check_field(descriptor, spec, action.input)

    return action


def parse_action(text: str, registry: ToolRegistry) -> Action:
    """Raw completion text -> validated Action. Raises ActionError subclasses."""
    return validate_action(extract_action(text), registry)
