import pytest
from unittest.mock import MagicMock, patch

from ooda_harness.config import Settings
from ooda_harness.errors import RegistryInconsistency, UnknownTool, UpstreamUnavailable
from ooda_harness.harness import RoundState, TurnController
from ooda_harness.models import Room, SandboxResponse, SandboxStatus, TurnRecord, ToolResult
from ooda_harness.prompts import build_messages
from ooda_harness.sandbox import SandboxEngine
from ooda_harness.session import History, Session
from ooda_harness.tools import build_registry


def action(command, body):
    return f"## Decision:\n- Use {command}.\n## The ONLY Action:\n```yaml\ncommand: {command}\ninput:\n{body}```\n"


SORT_ACTION = action(
    "SandboxedPython",
    "  code: |\n    lst = [2, 3, 1, 4, 5]\n    print(sorted(lst))\n",
)
SORT_CONCLUSION = action(
    "Conclude",
    "  conclusion: |\n    The ascending sorted list is [1, 2, 3, 4, 5].\n",
)
PRINT_ACTION = action("SandboxedPython", "  code: print(1)\n")


def scripted_model(*responses):
    model = MagicMock()
    model.complete.side_effect = list(responses)
    return model


def sent_messages(model, call):
    return model.complete.call_args_list[call].args[0]


@pytest.fixture
def engine():
    engine = MagicMock(spec=SandboxEngine)
    engine.run.return_value = SandboxResponse(status=0, stdout="1\n")
    return engine


@pytest.fixture
def bridge():
    bridge = MagicMock()
    bridge.get_all_rooms.return_value = [Room(name="Living room", lights=["1", "2"])]
    bridge.get_all_lights.return_value = []
    return bridge


# ---------------------------------------------------------------------------
# End-to-end sessions
# ---------------------------------------------------------------------------

def test_sort_then_conclude():
    registry = build_registry(SandboxEngine(timeout=5.0))
    model = scripted_model(SORT_ACTION, SORT_CONCLUSION)

    outcome = Session("Sort in ascending order: [2, 3, 1, 4, 5]", registry, model, Settings()).run()

    assert outcome.status == "concluded"
    assert outcome.conclusion == "The ascending sorted list is [1, 2, 3, 4, 5]."
    assert outcome.rounds == 2
    first = outcome.history[0]
    assert first.result.ok
    assert first.result.payload == {"status": 0, "stdout": "[1, 2, 3, 4, 5]\n", "stderr": ""}
    # the second prompt carries the first result back to the model
    assert "[1, 2, 3, 4, 5]" in sent_messages(model, 1)[-1]["content"]
    assert "Remaining Actions: 9" in sent_messages(model, 1)[-1]["content"]


def test_empty_room_filter_then_broader_query(engine, bridge):
    registry = build_registry(engine, bridge)
    model = scripted_model(
        action("RoomTool", "  room_filter: [\"Living Room 2\"]\n"),
        action("RoomTool", "  room_filter: []\n"),
        action("Conclude", "  conclusion: The Living room has lights 1 and 2.\n"),
    )

    outcome = Session("Which lights are in the living room?", registry, model, Settings()).run()

    assert outcome.status == "concluded"
    assert outcome.rounds == 3
    assert outcome.history[0].result.payload == {"rooms": []}
    assert outcome.history[1].action.input == {"room_filter": []}
    assert outcome.history[1].result.payload["rooms"][0]["lights"] == ["1", "2"]
    assert outcome.conclusion == "The Living room has lights 1 and 2."


def test_budget_exhausted_after_exactly_n_calls(engine):
    registry = build_registry(engine)
    model = MagicMock()
    model.complete.return_value = PRINT_ACTION

    outcome = Session("Loop forever", registry, model, Settings(max_rounds=3)).run()

    assert outcome.status == "budget_exhausted"
    assert outcome.conclusion is None
    assert outcome.rounds == 3
    assert "3 round" in outcome.error
    assert model.complete.call_count == 3
    assert [record.round for record in outcome.history] == [1, 2, 3]


def test_upstream_failure_ends_session_with_error(engine):
    registry = build_registry(engine)
    model = scripted_model(PRINT_ACTION, UpstreamUnavailable("503 from provider", transient=True))

    outcome = Session("Anything", registry, model, Settings()).run()

    assert outcome.status == "upstream_failure"
    assert "503 from provider" in outcome.error
    assert outcome.rounds == 1


def test_session_requires_a_question(engine):
    with pytest.raises(ValueError):
        Session("   ", build_registry(engine), MagicMock(), Settings())


# ---------------------------------------------------------------------------
# Recoverable round failures
# ---------------------------------------------------------------------------

def test_malformed_response_is_recorded_and_loop_continues(engine):
    registry = build_registry(engine)
    model = scripted_model("The answer is probably 42.", SORT_CONCLUSION)

    outcome = Session("Sort [2, 3, 1, 4, 5]", registry, model, Settings()).run()

    assert outcome.status == "concluded"
    failed = outcome.history[0]
    assert failed.action is None
    assert failed.result.ok is False
    assert failed.result.reason == "MalformedResponse"
    correction = sent_messages(model, 1)[-1]["content"]
    assert "What was incorrect in previous response?" in correction
    # the tool list is repeated after a parse failure
    assert "SandboxedPython" in correction
    engine.run.assert_not_called()


def test_missing_mandatory_field_never_reaches_the_tool(engine):
    registry = build_registry(engine)
    model = scripted_model(action("SandboxedPython", "  source: print(1)\n"), SORT_CONCLUSION)

    outcome = Session("Sort", registry, model, Settings()).run()

    result = outcome.history[0].result
    assert result.reason == "InvalidToolInput"
    assert "`code`" in result.message
    engine.run.assert_not_called()


def test_policy_violation_becomes_failed_result():
    registry = build_registry(SandboxEngine())
    model = scripted_model(action("SandboxedPython", "  code: import os\n"), SORT_CONCLUSION)

    outcome = Session("List files", registry, model, Settings()).run()

    result = outcome.history[0].result
    assert result.ok is False
    assert result.reason == "PolicyViolation"
    assert result.payload["status"] == SandboxStatus.POLICY_VIOLATION
    assert "PolicyViolation" in sent_messages(model, 1)[-1]["content"]


def test_handler_exception_becomes_failed_result(engine):
    engine.run.side_effect = RuntimeError("child exploded")
    registry = build_registry(engine)
    controller = TurnController(registry, scripted_model(PRINT_ACTION), "q", max_rounds=2)

    result = controller.run_round([])

    assert result.decision is RoundState.CONTINUE
    assert result.record.result.reason == "ToolInvocationFailed"
    assert "RuntimeError: child exploded" in result.record.result.message


def test_result_too_long(engine):
    engine.run.return_value = SandboxResponse(status=0, stdout="x" * 500)
    registry = build_registry(engine)
    controller = TurnController(
        registry, scripted_model(PRINT_ACTION), "q", max_rounds=2, max_result_chars=100
    )

    result = controller.run_round([])

    assert result.record.result.reason == "ResultTooLong"
    assert result.record.result.payload == {}


def test_oversized_failure_payload_is_dropped():
    registry = build_registry(SandboxEngine(timeout=5.0, max_output=16384))
    runaway = action("SandboxedPython", "  code: |\n    while True:\n        print('x' * 50)\n")
    controller = TurnController(
        registry, scripted_model(runaway), "q", max_rounds=2, max_result_chars=2048
    )

    record = controller.run_round([]).record

    assert record.result.reason == "ResourceExceeded"
    assert record.result.payload == {}
    assert "omitted" in record.result.message
    assert len(record.observation) < 4096
    assert "ResourceExceeded: ResourceExceeded" not in record.observation


def test_small_failure_payload_is_kept(engine):
    engine.run.return_value = SandboxResponse(
        status=SandboxStatus.RESOURCE_EXCEEDED,
        stdout="partial\n",
        stderr="ResourceExceeded: execution exceeded 5s time limit\n",
    )
    controller = TurnController(build_registry(engine), scripted_model(PRINT_ACTION), "q", max_rounds=2)

    record = controller.run_round([]).record

    assert record.result.payload["stdout"] == "partial\n"
    assert "ResourceExceeded: execution exceeded 5s time limit" in record.observation


def test_empty_conclusion_is_sent_back_for_correction(engine):
    registry = build_registry(engine)
    model = scripted_model(action("Conclude", "  conclusion: '   '\n"), SORT_CONCLUSION)

    outcome = Session("Sort", registry, model, Settings()).run()

    assert outcome.status == "concluded"
    assert outcome.rounds == 2
    assert outcome.history[0].result.reason == "ToolInvocationFailed"
    assert "conclusion is empty" in sent_messages(model, 1)[-1]["content"]
    assert outcome.conclusion == "The ascending sorted list is [1, 2, 3, 4, 5]."


def test_session_runs_only_once(engine):
    session = Session("Sort", build_registry(engine), scripted_model(SORT_CONCLUSION), Settings())
    session.run()
    with pytest.raises(RuntimeError, match="already ran"):
        session.run()
    assert len(session.history) == 1


# ---------------------------------------------------------------------------
# Controller invariants
# ---------------------------------------------------------------------------

def test_terminal_round_returns_termination(engine):
    controller = TurnController(build_registry(engine), scripted_model(SORT_CONCLUSION), "q", max_rounds=5)
    result = controller.run_round([])
    assert result.decision is RoundState.TERMINATE
    assert controller.state is RoundState.TERMINATE
    assert result.termination.conclusion == "The ascending sorted list is [1, 2, 3, 4, 5]."


def test_last_round_terminates_without_conclusion(engine):
    controller = TurnController(build_registry(engine), scripted_model(PRINT_ACTION), "q", max_rounds=1)
    result = controller.run_round([])
    assert result.decision is RoundState.TERMINATE
    assert result.termination is None
    assert result.record.round == 1


def test_round_past_budget_is_refused(engine):
    controller = TurnController(build_registry(engine), MagicMock(), "q", max_rounds=1)
    record = TurnRecord(
        round=1, prompt="p", response="r", result=ToolResult.success("SandboxedPython", {})
    )
    with pytest.raises(ValueError):
        controller.run_round([record])


def test_registry_miss_after_parse_is_fatal(engine):
    registry = build_registry(engine)
    controller = TurnController(registry, scripted_model(PRINT_ACTION), "q", max_rounds=2)

    with patch.object(registry, "resolve", side_effect=UnknownTool("gone", tool="SandboxedPython")):
        with pytest.raises(RegistryInconsistency):
            controller.run_round([])


def test_every_prompt_carries_the_catalog(engine):
    registry = build_registry(engine)
    model = MagicMock()
    model.complete.return_value = PRINT_ACTION

    Session("q", registry, model, Settings(max_rounds=2)).run()

    for call in range(2):
        assert "# The following are the ONLY Tools" in sent_messages(model, call)[1]["content"]


def test_history_is_append_only():
    history = History()
    record = TurnRecord(round=2, prompt="p", response="r", result=ToolResult.success("x", {}))
    with pytest.raises(ValueError, match="round 1"):
        history.append(record)


# ---------------------------------------------------------------------------
# Message assembly
# ---------------------------------------------------------------------------

def test_first_round_messages(engine):
    messages = build_messages(build_registry(engine), "What is 2 + 2?", [], remaining=5)
    assert messages[0]["role"] == "system"
    assert messages[-1]["role"] == "user"
    assert "Original question: What is 2 + 2?" in messages[-1]["content"]
    assert "Remaining Actions: 5" in messages[-1]["content"]
    # warm-up exchange with the sort example
    assert any("Sort in ascending order" in m["content"] for m in messages[:-1])
