"""Tests for the transition engine: totality, divergence and history."""

import itertools

import pytest

from workflow_fsm.fsm import engine as engine_module
from workflow_fsm.fsm.engine import TransitionEngine
from workflow_fsm.fsm.snapshot import PipelineSnapshot
from workflow_fsm.fsm.states import TRANSITIONS, GenerationState
from workflow_fsm.utils.result import ErrorKind


def engine_in(state: GenerationState) -> TransitionEngine:
    """Engine whose snapshot sits in ``state`` with a one-entry history."""
    snapshot = PipelineSnapshot.fresh(session_id="engine-test")
    snapshot.current_state = state
    return TransitionEngine.from_snapshot(snapshot)


@pytest.mark.parametrize(
    "source,target",
    list(itertools.product(GenerationState, GenerationState)),
    ids=lambda s: s.name,
)
def test_transition_to_is_total(source, target):
    engine = engine_in(source)

    result = engine.transition_to(target, "table check")

    if target in TRANSITIONS[source]:
        assert result.is_ok()
        assert engine.current_state is target
    else:
        assert result.is_err()
        assert engine.current_state is GenerationState.ERROR_HANDLING
        assert engine.get_snapshot().last_error


def test_fresh_engine_has_initialized_entry():
    engine = TransitionEngine()
    history = engine.get_state_history()

    assert engine.current_state is GenerationState.IDLE
    assert len(history) == 1
    assert history[0].reason == "Initialized"


def test_illegal_transition_diverts_to_error_handling():
    engine = TransitionEngine()

    result = engine.transition_to(GenerationState.VALIDATION)

    assert result.is_err()
    error = result.unwrap_err()
    assert error.kind is ErrorKind.INVALID_TRANSITION
    assert error.diverted
    assert engine.current_state is GenerationState.ERROR_HANDLING
    assert "Invalid transition" in engine.get_snapshot().last_error
    assert len(engine.get_state_history()) == 2


def test_illegal_transition_inside_error_handling_does_not_double_divert():
    engine = TransitionEngine()
    engine.transition_to(GenerationState.VALIDATION)
    before = engine.get_state_history()

    result = engine.transition_to(GenerationState.READY)

    assert result.is_err()
    assert not result.unwrap_err().diverted
    assert engine.current_state is GenerationState.ERROR_HANDLING
    assert engine.get_state_history() == before


def test_history_grows_by_one_per_transition_or_divergence():
    engine = TransitionEngine()
    calls = [
        GenerationState.PROMPT_RECEIVED,
        GenerationState.CLARIFICATION_ACTIVE,
        GenerationState.READY,  # diverted
        GenerationState.IDLE,
        GenerationState.PROMPT_RECEIVED,
    ]

    for n, target in enumerate(calls, start=1):
        engine.transition_to(target)
        assert len(engine.get_state_history()) == n + 1


def test_transition_to_error_records_each_call():
    engine = TransitionEngine()

    engine.transition_to_error("first failure")
    engine.transition_to_error("second failure")

    snapshot = engine.get_snapshot()
    assert snapshot.current_state is GenerationState.ERROR_HANDLING
    assert snapshot.last_error == "second failure"
    assert [h.state for h in snapshot.history] == [
        GenerationState.IDLE,
        GenerationState.ERROR_HANDLING,
        GenerationState.ERROR_HANDLING,
    ]
    assert snapshot.history[-1].reason == "Error: second failure"


def test_handle_error_aliases():
    engine = TransitionEngine()
    assert engine.handle_error("boom").is_ok()
    assert engine.safe_transition_to_error("again").is_ok()
    assert engine.get_snapshot().last_error == "again"


def test_string_target_is_parsed():
    engine = TransitionEngine()
    assert engine.transition_to("prompt_received").is_ok()
    assert engine.current_state is GenerationState.PROMPT_RECEIVED


def test_unparseable_target_is_diverted_as_internal_error():
    engine = TransitionEngine()

    result = engine.transition_to("not-a-state")

    assert result.unwrap_err().kind is ErrorKind.INTERNAL_ERROR
    assert engine.current_state is GenerationState.ERROR_HANDLING
    assert "Transition error" in engine.get_snapshot().last_error


def test_unexpected_fault_is_converted_to_divergence(monkeypatch):
    def explode(current, target):
        raise RuntimeError("table unavailable")

    monkeypatch.setattr(engine_module, "check_transition", explode)
    engine = TransitionEngine()

    result = engine.transition_to(GenerationState.PROMPT_RECEIVED)

    assert result.is_err()
    assert result.unwrap_err().kind is ErrorKind.INTERNAL_ERROR
    assert engine.current_state is GenerationState.ERROR_HANDLING
    assert "table unavailable" in engine.get_snapshot().last_error


@pytest.mark.parametrize(
    "state",
    [GenerationState.READY, GenerationState.REJECTED, GenerationState.ERROR_HANDLING],
)
def test_reset_from_any_state(state):
    engine = engine_in(state)
    engine.transition_to_error("something")

    assert engine.reset().is_ok()

    snapshot = engine.get_snapshot()
    assert snapshot.current_state is GenerationState.IDLE
    assert len(snapshot.history) == 1
    assert snapshot.last_error is None
    assert snapshot.session_id == "engine-test"


def test_get_snapshot_is_a_copy():
    engine = TransitionEngine()
    snapshot = engine.get_snapshot()

    snapshot.current_state = GenerationState.READY
    snapshot.history.clear()

    assert engine.current_state is GenerationState.IDLE
    assert len(engine.get_state_history()) == 1


def test_terminal_predicate():
    assert engine_in(GenerationState.READY).is_terminal_state()
    assert engine_in(GenerationState.REJECTED).is_terminal_state()
    assert not engine_in(GenerationState.ERROR_HANDLING).is_terminal_state()
    assert engine_in(GenerationState.ERROR_HANDLING).is_error_state()
