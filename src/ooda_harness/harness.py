# harness.py
# OODA turn controller.
#
# The TurnController is the kernel. The model is a passive responder; this
# class owns control flow, parsing, dispatch and recording for one round at a
# time. It never holds history itself: the session passes it in read-only and
# appends the record the controller returns.
#
# Round state machine:
#   BUILDING_PROMPT → AWAITING_COMPLETION → PARSING → DISPATCHING
#   → RECORDING → CONTINUE | TERMINATE
#
# A parse failure skips DISPATCHING and records a corrective result instead.
# All terminal output is delegated to display.py, no formatting here.

from enum import Enum
from typing import NamedTuple, Sequence

from ooda_harness import display, prompts
from ooda_harness.errors import (
    ActionError,
    RegistryInconsistency,
    ToolInvocationFailed,
    UnknownTool,
    UpstreamUnavailable,
)
from ooda_harness.llm import ModelClient
from ooda_harness.models import Action, TerminationMessage, ToolResult, TurnRecord
from ooda_harness.parser import parse_action
from ooda_harness.registry import ToolRegistry


class RoundState(str, Enum):
    BUILDING_PROMPT = "BuildingPrompt"
    AWAITING_COMPLETION = "AwaitingCompletion"
    PARSING = "Parsing"
    DISPATCHING = "Dispatching"
    RECORDING = "Recording"
    CONTINUE = "Continue"
    TERMINATE = "Terminate"


class RoundResult(NamedTuple):
    """What one round hands back to the session."""

    decision: RoundState
    record: TurnRecord | None = None
    termination: TerminationMessage | None = None
    error: str | None = None


class TurnController:
    """
    Drives exactly one OODA round per run_round() call.

    Example:
        controller = TurnController(registry, model, "Sort [2, 3, 1]", max_rounds=5)
        result = controller.run_round(history=[])
    """

    def __init__(
        self,
        registry: ToolRegistry,
        model: ModelClient,
        question: str,
        max_rounds: int,
        max_result_chars: int = 2048,
    ) -> None:
        if max_rounds < 1:
            raise ValueError("max_rounds must be at least 1.")
        self._registry = registry
        self._model = model
        self._question = question
        self._max_rounds = max_rounds
        self._max_result_chars = max_result_chars
        self.state = RoundState.BUILDING_PROMPT

    def _enter(self, state: RoundState) -> None:
        self.state = state

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def dispatch(self, action: Action) -> ToolResult:
        """
        Resolve and invoke the action's tool.

        Handler errors become failed results. A registry miss here means the
        parser accepted a name the registry cannot resolve, which is a defect:
        it raises RegistryInconsistency.
        """
        try:
            tool = self._registry.resolve(action.command)
        except UnknownTool as exc:
            message = f"Validated action names unresolvable tool '{action.command}'."
            display.internal_inconsistency(message)
            raise RegistryInconsistency(message) from exc

        try:
            payload = tool.invoke(action.input)
        except ToolInvocationFailed as exc:
            return self._bounded(ToolResult.failure(tool.name, exc.reason, str(exc), exc.payload))
        except Exception as exc:
            return ToolResult.failure(
                tool.name, ToolInvocationFailed.reason, f"{type(exc).__name__}: {exc}"
            )

        if tool.terminal:
            return ToolResult.success(tool.name, payload)
        return self._bounded(ToolResult.success(tool.name, payload))

    def _bounded(self, result: ToolResult) -> ToolResult:
        """Keep any payload fed back to the model within max_result_chars."""
        if not result.payload:
            return result
        size = len(prompts.render_payload(result.payload))
        if size <= self._max_result_chars:
            return result

        if result.ok:
            return ToolResult.failure(
                result.tool,
                "ResultTooLong",
                f"The result is too long ({size} chars). Max allowed is "
                f"{self._max_result_chars}. Ask for a narrower result or use "
                "SandboxedPython to reduce the data.",
            )
        # failed results keep their reason; only the oversized output goes
        return ToolResult.failure(
            result.tool,
            result.reason or ToolInvocationFailed.reason,
            f"{result.message} (output of {size} chars omitted, max allowed is "
            f"{self._max_result_chars})",
        )

    # ------------------------------------------------------------------
    # Round
    # ------------------------------------------------------------------

    def run_round(self, history: Sequence[TurnRecord]) -> RoundResult:
        round_no = len(history) + 1
        if round_no > self._max_rounds:
            raise ValueError(f"Round budget of {self._max_rounds} already spent.")
        remaining = self._max_rounds - round_no

        display.round_start(round_no, self._max_rounds)

        # ── Orient: regenerate the prompt from the live registry ──────
        self._enter(RoundState.BUILDING_PROMPT)
        messages = prompts.build_messages(
            self._registry, self._question, history, self._max_rounds - len(history)
        )

        # ── Observe: the sole external call ───────────────────────────
        self._enter(RoundState.AWAITING_COMPLETION)
        display.calling_model()
        try:
            response = self._model.complete(messages)
        except UpstreamUnavailable as exc:
            self._enter(RoundState.TERMINATE)
            display.halt(f"Model unavailable: {exc}")
            return RoundResult(RoundState.TERMINATE, error=str(exc))
        display.model_response(response)

        # ── Decide: exactly one validated action, or a correction ─────
        self._enter(RoundState.PARSING)
        action: Action | None
        try:
            action = parse_action(response, self._registry)
        except ActionError as exc:
            display.parse_failed(exc)
            action = None
            result = ToolResult.failure(exc.tool or "unknown", exc.reason, exc.message)
            observation = prompts.result_message(result, self._question, remaining, self._registry)
        else:
            # ── Act ───────────────────────────────────────────────────
            self._enter(RoundState.DISPATCHING)
            display.action_dispatched(action)
            result = self.dispatch(action)
            display.tool_result(result)
            observation = prompts.result_message(result, self._question, remaining)

        self._enter(RoundState.RECORDING)
        record = TurnRecord(
            round=round_no,
            prompt=messages[-1]["content"],
            response=response,
            action=action,
            result=result,
            observation=observation,
        )

        if action is not None and result.ok and self._registry.resolve(action.command).terminal:
            self._enter(RoundState.TERMINATE)
            return RoundResult(
                RoundState.TERMINATE,
                record=record,
                termination=TerminationMessage(**result.payload),
            )

        if round_no >= self._max_rounds:
            self._enter(RoundState.TERMINATE)
            return RoundResult(RoundState.TERMINATE, record=record)

        self._enter(RoundState.CONTINUE)
        return RoundResult(RoundState.CONTINUE, record=record)
