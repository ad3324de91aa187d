# prompts.py
# Prompt text and message assembly for the OODA loop.
#
# Everything the model sees is built here from the registry catalog and the
# recorded history; the harness only decides when to call these.

from typing import Sequence

import yaml

from ooda_harness.models import ToolResult, TurnRecord
from ooda_harness.registry import ToolRegistry

SYSTEM_PROMPT = (
    "You are an automated agent interacting with the WORLD through Tools. "
    "Listen to the WORLD!"
)

PREFIX = """\
You are an agent assisting the WORLD. Use the available Tools to answer the question as best as you can.
You proceed iteratively using an OODA loop (Observe, Orient, Decide, Act).

The result of each Action is given back to you. The loop repeats until you have the answer to the \
original question. No task is complete until the Conclude Tool is used to provide the answer.
Template expansion is not supported in Actions: pass values from one Action to the next yourself. Be concise.
"""

FORMAT = """
# Format of your response

Use the following format, without being verbose:
====================
## Observations:
- What do you know to be true? What don't you know? What are your sources?
## Orientation:
- The intermediate objectives to answer the original question.
## Decision:
- What to do first, and why.
## The ONLY Action:
```yaml
command: <ToolName>
input:
  <... using the `input_format` of the Tool ...>
```
====================
Exactly one Action per response: one `command` and one `input`, in one YAML block.
"""

TOOL_PREFIX = """
# The following are the ONLY Tools you can use for your Actions:
"""

EXAMPLE_QUESTION = "Sort in ascending order: [2, 3, 1, 4, 5]"

EXAMPLE_ACTION = """\
## Observations:
- The given list to sort is [2, 3, 1, 4, 5].
## Orientation:
- SandboxedPython can sort the list.
- The Conclude Tool ends the task once I have the sorted list.
## Decision:
- Use sorted() in SandboxedPython.
## The ONLY Action:
```yaml
command: SandboxedPython
input:
  code: |
    lst = [2, 3, 1, 4, 5]
    print(sorted(lst))
```"""

EXAMPLE_RESULT = """\
# Action SandboxedPython result:
```yaml
status: 0
stdout: |
  [1, 2, 3, 4, 5]
stderr: ''
```"""

EXAMPLE_CONCLUSION = """\
## Observations:
- The sorted list is [1, 2, 3, 4, 5].
## Orientation:
- I know the answer to the original question.
## Decision:
- Use the Conclude Tool with the sorted list.
## The ONLY Action:
```yaml
command: Conclude
input:
  original_question: |
    Sort in ascending order: [2, 3, 1, 4, 5]
  conclusion: |
    The ascending sorted list is [1, 2, 3, 4, 5].
```"""


# ---------------------------------------------------------------------------
# Fragments
# ---------------------------------------------------------------------------


def tool_description(registry: ToolRegistry) -> str:
    return TOOL_PREFIX + registry.catalog()


def warm_up_prompt(registry: ToolRegistry) -> str:
    return PREFIX + FORMAT + tool_description(registry)


def task_prompt(question: str, remaining: int | None = None) -> str:
    budget = f"\nRemaining Actions: {remaining}" if remaining is not None else ""
    return (
        f"# Your turn\nOriginal question: {question}{budget}\n"
        "Do you have the answer? Use the Conclude Tool to terminate the task.\n"
        "Observations, Orientation, Decision, The ONLY Action?"
    )


def render_payload(payload: dict) -> str:
    return yaml.safe_dump(payload, sort_keys=False, allow_unicode=True, width=1000)


def result_message(
    result: ToolResult,
    question: str,
    remaining: int,
    registry: ToolRegistry | None = None,
) -> str:
    """
    Render a round's outcome for the next prompt.

    Failures ask the model to correct itself; parse failures (registry given)
    also repeat the tool list.
    """
    if result.ok:
        return (
            f"# Action {result.tool} result:\n```yaml\n{render_payload(result.payload)}```\n"
            + task_prompt(question, remaining)
        )

    details = f"{result.reason}: {result.message}"
    if result.payload:
        details += f"\n```yaml\n{render_payload(result.payload)}```"
    catalog = tool_description(registry) if registry is not None else ""
    return (
        f"# Action {result.tool} failed with:\n{details}\n{catalog}"
        "What was incorrect in previous response?\n"
        + task_prompt(question, remaining)
    )


# ---------------------------------------------------------------------------
# Message list
# ---------------------------------------------------------------------------


def build_messages(
    registry: ToolRegistry,
    question: str,
    history: Sequence[TurnRecord],
    remaining: int,
) -> list[dict[str, str]]:
    """System framing, warm-up exchange, the task, then every recorded round."""
    messages = [
        {"role": "system", "content": SYSTEM_PROMPT},
        {"role": "user", "content": warm_up_prompt(registry).strip()},
        {"role": "assistant", "content": "Understood."},
        {"role": "user", "content": task_prompt(EXAMPLE_QUESTION)},
        {"role": "assistant", "content": EXAMPLE_ACTION},
        {"role": "user", "content": EXAMPLE_RESULT + "\n" + task_prompt(EXAMPLE_QUESTION)},
        {"role": "assistant", "content": EXAMPLE_CONCLUSION},
    ]

    if not history:
        messages.append({"role": "user", "content": task_prompt(question, remaining)})
        return messages

    messages.append({"role": "user", "content": history[0].prompt})
    for record in history:
        messages.append({"role": "assistant", "content": record.response})
        messages.append({"role": "user", "content": record.observation})
    return messages
