"""Shared fixtures for workflow-fsm tests."""

from __future__ import annotations

import pytest

from workflow_fsm.config.settings import UpliftMode
from workflow_fsm.fsm.machine import GenerationStateMachine
from workflow_fsm.fsm.states import GenerationState
from workflow_fsm.utils.logging import configure_logging

BLUEPRINT = {"nodes": [{"id": "1", "type": "trigger"}], "edges": []}


@pytest.fixture(autouse=True)
def quiet_logging():
    # CLI invocations rebind the log stream to the runner's capture buffer
    configure_logging(level="error")
    yield
    configure_logging(level="error")


@pytest.fixture
def machine() -> GenerationStateMachine:
    return GenerationStateMachine(session_id="test-session", debug_mode=True)


@pytest.fixture
def strict_machine() -> GenerationStateMachine:
    return GenerationStateMachine(session_id="strict-session", uplift_mode=UpliftMode.STRICT)


def walk_to_confirmed_understanding(machine: GenerationStateMachine) -> None:
    machine.set_user_prompt("build a slack bot")
    machine.set_clarifying_questions([])
    machine.confirm_understanding("post to slack daily")
    assert machine.current_state is GenerationState.UNDERSTANDING_CONFIRMED


def walk_to_building(machine: GenerationStateMachine) -> None:
    walk_to_confirmed_understanding(machine)
    machine.start_building()
    assert machine.current_state is GenerationState.BUILDING


def walk_to_validation(machine: GenerationStateMachine) -> None:
    walk_to_building(machine)
    machine.set_workflow_blueprint(BLUEPRINT)
    assert machine.current_state is GenerationState.VALIDATION


@pytest.fixture
def building_machine(machine: GenerationStateMachine) -> GenerationStateMachine:
    walk_to_building(machine)
    return machine


@pytest.fixture
def validation_machine(machine: GenerationStateMachine) -> GenerationStateMachine:
    walk_to_validation(machine)
    return machine
