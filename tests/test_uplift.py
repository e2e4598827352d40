"""Tests for the composite helpers that walk a lagging session forward."""

import pytest

from conftest import BLUEPRINT, walk_to_building, walk_to_confirmed_understanding, walk_to_validation
from workflow_fsm.fsm.states import GenerationState
from workflow_fsm.utils.result import ErrorKind


def states_of(machine):
    return [h.state for h in machine.get_state_history()]


@pytest.fixture
def clarifying(machine):
    machine.set_user_prompt("email me a weekly report")
    machine.set_clarifying_questions([{"id": "q1", "text": "Which day?"}])
    return machine


@pytest.fixture
def rebuilding(validation_machine):
    """BUILDING with a blueprint left over from the previous build."""
    validation_machine.return_to_building()
    return validation_machine


class TestEnsureStateForBuilding:
    @pytest.mark.parametrize("prompt_first", [False, True])
    def test_requires_confirmation_before_clarification(self, machine, prompt_first):
        if prompt_first:
            machine.set_user_prompt("prompt")
        state_before = machine.current_state

        result = machine.ensure_state_for_building()

        error = result.unwrap_err()
        assert error.kind is ErrorKind.CONFIRMATION_REQUIRED
        assert error.requires_confirmation
        assert machine.current_state is state_before

    def test_lenient_builds_from_prompt(self, clarifying):
        result = clarifying.ensure_state_for_building()

        assert result.is_ok()
        snapshot = clarifying.get_snapshot()
        assert snapshot.current_state is GenerationState.BUILDING
        assert snapshot.final_understanding == "email me a weekly report"
        assert snapshot.history[-1].reason == "Building with partial understanding"

    def test_lenient_without_prompt_requires_confirmation(self, machine):
        machine.set_user_prompt("")
        machine.set_clarifying_questions([])

        result = machine.ensure_state_for_building()

        assert result.unwrap_err().kind is ErrorKind.CONFIRMATION_REQUIRED
        assert machine.current_state is GenerationState.CLARIFICATION_ACTIVE

    def test_lenient_still_checks_credentials(self, clarifying):
        clarifying.set_required_credentials(["SMTP_PASSWORD"])

        result = clarifying.ensure_state_for_building()

        assert result.unwrap_err().kind is ErrorKind.MISSING_CREDENTIALS
        snapshot = clarifying.get_snapshot()
        assert snapshot.current_state is GenerationState.CLARIFICATION_ACTIVE
        assert snapshot.final_understanding == ""

    def test_strict_refuses_unconfirmed_clarification(self, strict_machine):
        strict_machine.set_user_prompt("email me a weekly report")
        strict_machine.set_clarifying_questions([])

        result = strict_machine.ensure_state_for_building()

        error = result.unwrap_err()
        assert error.kind is ErrorKind.CONFIRMATION_REQUIRED
        assert error.requires_confirmation
        assert strict_machine.current_state is GenerationState.CLARIFICATION_ACTIVE

    def test_resumed_clarification_reconfirms_kept_understanding(self, machine):
        walk_to_confirmed_understanding(machine)
        machine.handle_error("analysis timed out")
        machine.resume_clarification()

        assert machine.ensure_state_for_building().is_ok()

        assert states_of(machine)[-3:] == [
            GenerationState.CLARIFICATION_ACTIVE,
            GenerationState.UNDERSTANDING_CONFIRMED,
            GenerationState.BUILDING,
        ]

    def test_walks_through_credential_collection(self, machine):
        walk_to_confirmed_understanding(machine)
        machine._snapshot.credentials_required = ["SLACK_TOKEN"]
        machine.set_provided_credentials({"slack_bot_token": "xoxb"})

        assert machine.ensure_state_for_building().is_ok()

        assert states_of(machine)[-2:] == [
            GenerationState.CREDENTIAL_COLLECTION,
            GenerationState.BUILDING,
        ]

    def test_failure_leaves_last_committed_step(self, machine):
        walk_to_confirmed_understanding(machine)
        machine._snapshot.credentials_required = ["SLACK_TOKEN"]

        result = machine.ensure_state_for_building()

        assert result.unwrap_err().kind is ErrorKind.MISSING_CREDENTIALS
        assert machine.current_state is GenerationState.CREDENTIAL_COLLECTION

    @pytest.mark.parametrize("walk", [walk_to_building, walk_to_validation])
    def test_idempotent_once_build_reached(self, machine, walk):
        walk(machine)
        history_before = machine.get_state_history()

        first = machine.ensure_state_for_building()
        second = machine.ensure_state_for_building()

        assert first.is_ok() and second.is_ok()
        assert machine.get_state_history() == history_before

    def test_error_handling_is_wrong_stage(self, machine):
        machine.handle_error("boom")

        result = machine.ensure_state_for_building()

        assert result.unwrap_err().kind is ErrorKind.WRONG_STAGE
        assert machine.current_state is GenerationState.ERROR_HANDLING


class TestSetWorkflowBlueprintUplift:
    def test_from_confirmed_understanding(self, machine):
        walk_to_confirmed_understanding(machine)

        result = machine.set_workflow_blueprint(BLUEPRINT)

        assert result.is_ok()
        assert states_of(machine)[-2:] == [
            GenerationState.BUILDING,
            GenerationState.VALIDATION,
        ]
        assert machine.get_snapshot().blueprint.has_nodes()

    def test_from_idle_reports_confirmation(self, machine):
        result = machine.set_workflow_blueprint(BLUEPRINT)

        error = result.unwrap_err()
        assert error.kind is ErrorKind.CONFIRMATION_REQUIRED
        assert error.requires_confirmation
        assert "must be BUILDING" in error.message
        assert machine.get_snapshot().blueprint.is_empty()

    def test_from_validation_is_wrong_stage(self, validation_machine):
        result = validation_machine.set_workflow_blueprint(BLUEPRINT)

        assert result.unwrap_err().kind is ErrorKind.WRONG_STAGE
        assert validation_machine.current_state is GenerationState.VALIDATION


class TestMarkWorkflowReadyUplift:
    def test_from_building_with_blueprint(self, rebuilding):
        assert rebuilding.mark_workflow_ready().is_ok()
        assert states_of(rebuilding)[-2:] == [
            GenerationState.VALIDATION,
            GenerationState.READY,
        ]

    def test_from_credential_collection_checks_credentials(self, rebuilding):
        rebuilding.set_required_credentials(["SLACK_TOKEN"])
        assert rebuilding.current_state is GenerationState.CREDENTIAL_COLLECTION

        result = rebuilding.mark_workflow_ready()

        assert result.unwrap_err().kind is ErrorKind.MISSING_CREDENTIALS
        assert rebuilding.current_state is GenerationState.CREDENTIAL_COLLECTION

        rebuilding.set_provided_credentials({"SLACK_TOKEN": "xoxb"})
        assert rebuilding.mark_workflow_ready().is_ok()
        assert rebuilding.current_state is GenerationState.READY

    def test_from_building_without_blueprint(self, building_machine):
        result = building_machine.mark_workflow_ready()

        error = result.unwrap_err()
        assert error.kind is ErrorKind.PRECONDITION_FAILED
        assert "Workflow must be built first" in error.message
        assert building_machine.current_state is GenerationState.BUILDING

    def test_walks_confirmation_checkpoint(self, building_machine):
        building_machine.set_workflow_blueprint(BLUEPRINT, require_confirmation=True)

        assert building_machine.mark_workflow_ready().is_ok()

        assert states_of(building_machine)[-4:] == [
            GenerationState.WAITING_CONFIRMATION,
            GenerationState.CONFIRMED,
            GenerationState.VALIDATION,
            GenerationState.READY,
        ]

    def test_strict_does_not_uplift(self, strict_machine):
        walk_to_validation(strict_machine)
        strict_machine.return_to_building()

        result = strict_machine.mark_workflow_ready()

        assert result.unwrap_err().kind is ErrorKind.WRONG_STAGE
        assert strict_machine.current_state is GenerationState.BUILDING


class TestMoveToValidation:
    def test_from_building_walks_confirmation(self, building_machine):
        assert building_machine.move_to_validation(BLUEPRINT).is_ok()

        assert states_of(building_machine)[-4:] == [
            GenerationState.WORKFLOW_BUILT,
            GenerationState.WAITING_CONFIRMATION,
            GenerationState.CONFIRMED,
            GenerationState.VALIDATION,
        ]

    def test_from_building_skipping_confirmation(self, building_machine):
        assert building_machine.move_to_validation(BLUEPRINT, skip_confirmation=True).is_ok()

        assert states_of(building_machine)[-2:] == [
            GenerationState.BUILDING,
            GenerationState.VALIDATION,
        ]

    def test_from_workflow_built_skipping_confirmation(self, building_machine):
        building_machine.set_workflow_blueprint(BLUEPRINT, require_confirmation=True)

        assert building_machine.move_to_validation(None, skip_confirmation=True).is_ok()

        assert building_machine.current_state is GenerationState.VALIDATION
        assert building_machine.get_snapshot().blueprint.has_nodes()

    def test_from_waiting_confirmation(self, building_machine):
        building_machine.set_workflow_blueprint(BLUEPRINT, require_confirmation=True)
        building_machine.mark_waiting_for_confirmation()

        assert building_machine.move_to_validation(None).is_ok()
        assert building_machine.current_state is GenerationState.VALIDATION

    def test_from_clarification_uplifts(self, clarifying):
        assert clarifying.move_to_validation(BLUEPRINT, skip_confirmation=True).is_ok()

        assert states_of(clarifying)[-2:] == [
            GenerationState.BUILDING,
            GenerationState.VALIDATION,
        ]

    def test_already_in_validation(self, validation_machine):
        history_before = validation_machine.get_state_history()
        assert validation_machine.move_to_validation(BLUEPRINT).is_ok()
        assert validation_machine.get_state_history() == history_before

    def test_from_idle_requires_confirmation(self, machine):
        result = machine.move_to_validation(BLUEPRINT)
        assert result.unwrap_err().requires_confirmation
        assert machine.current_state is GenerationState.IDLE

    def test_partial_progress_is_kept(self, machine):
        walk_to_confirmed_understanding(machine)
        machine._snapshot.credentials_required = ["OPENAI_API_KEY"]

        result = machine.move_to_validation(BLUEPRINT)

        assert result.unwrap_err().kind is ErrorKind.MISSING_CREDENTIALS
        assert machine.current_state is GenerationState.CREDENTIAL_COLLECTION
        assert machine.get_snapshot().blueprint.is_empty()


class TestMoveToReady:
    def test_from_building_with_blueprint(self, rebuilding):
        assert rebuilding.move_to_ready().is_ok()
        assert rebuilding.current_state is GenerationState.READY

    def test_from_building_without_blueprint(self, building_machine):
        result = building_machine.move_to_ready()
        assert result.unwrap_err().kind is ErrorKind.PRECONDITION_FAILED
        assert building_machine.current_state is GenerationState.BUILDING

    def test_from_validation(self, validation_machine):
        assert validation_machine.move_to_ready().is_ok()
        assert validation_machine.current_state is GenerationState.READY

    def test_already_ready(self, validation_machine):
        validation_machine.move_to_ready()
        history_before = validation_machine.get_state_history()

        assert validation_machine.move_to_ready().is_ok()
        assert validation_machine.get_state_history() == history_before

    def test_from_earlier_stage_is_wrong_stage(self, machine):
        walk_to_confirmed_understanding(machine)
        result = machine.move_to_ready()
        assert result.unwrap_err().kind is ErrorKind.WRONG_STAGE
