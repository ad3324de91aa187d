# session.py
# Session driver, the only entry the outside world calls.
#
# Owns the history and the round budget, runs the TurnController until it
# says TERMINATE, and always returns a SessionOutcome: a conclusion, a
# budget-exhausted outcome, or an upstream failure. Never an empty answer.

from typing import Iterator, Sequence, overload

from ooda_harness import display
from ooda_harness.config import Settings
from ooda_harness.harness import RoundState, TurnController
from ooda_harness.llm import ModelClient
from ooda_harness.models import SessionOutcome, TurnRecord
from ooda_harness.registry import ToolRegistry


class History(Sequence[TurnRecord]):
    """Append-only, ordered list of round records."""

    def __init__(self) -> None:
        self._records: list[TurnRecord] = []

    def append(self, record: TurnRecord) -> None:
        expected = len(self._records) + 1
        if record.round != expected:
            raise ValueError(f"Expected a record for round {expected}, got round {record.round}.")
        self._records.append(record)

    @overload
    def __getitem__(self, index: int) -> TurnRecord: ...

    @overload
    def __getitem__(self, index: slice) -> Sequence[TurnRecord]: ...

    def __getitem__(self, index):
        if isinstance(index, slice):
            return tuple(self._records[index])
        return self._records[index]

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[TurnRecord]:
        return iter(tuple(self._records))


class Session:
    """
    One question, one registry, one history.

    Example:
        session = Session("Sort [2, 3, 1]", registry, model, Settings(max_rounds=5))
        outcome = session.run()
    """

    def __init__(
        self,
        question: str,
        registry: ToolRegistry,
        model: ModelClient,
        settings: Settings,
    ) -> None:
        if not question.strip():
            raise ValueError("A session needs a non-empty question.")
        self._question = question.strip()
        self._registry = registry
        self._settings = settings
        self._history = History()
        self._ran = False
        self._controller = TurnController(
            registry,
            model,
            self._question,
            max_rounds=settings.max_rounds,
            max_result_chars=settings.max_result_chars,
        )

    @property
    def history(self) -> History:
        return self._history

    def _outcome(self, status: str, **kwargs) -> SessionOutcome:
        return SessionOutcome(
            status=status,
            rounds=len(self._history),
            history=tuple(self._history),
            **kwargs,
        )

    def run(self) -> SessionOutcome:
        if self._ran:
            raise RuntimeError("Session already ran; create a new Session for another question.")
        self._ran = True
        display.question_received(self._question)

        while True:
            result = self._controller.run_round(self._history)
            if result.record is not None:
                self._history.append(result.record)

            if result.decision is RoundState.CONTINUE:
                continue

            display.history_summary(self._history)

            if result.termination is not None:
                display.final_result(result.termination.conclusion)
                return self._outcome("concluded", conclusion=result.termination.conclusion)

            if result.error is not None:
                return self._outcome("upstream_failure", error=result.error)

            display.budget_exhausted(self._settings.max_rounds)
            return self._outcome(
                "budget_exhausted",
                error=f"No conclusion after {self._settings.max_rounds} round(s).",
            )
