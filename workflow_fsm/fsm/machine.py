"""Guarded stage operations and uplift helpers for workflow generation."""

from __future__ import annotations

import dataclasses
from typing import Any, Callable, Iterable, Mapping, Optional, Union

from workflow_fsm.config.settings import GenerationConfig, UpliftMode
from workflow_fsm.fsm.engine import TransitionEngine
from workflow_fsm.fsm.snapshot import (
    ClarifyingQuestion,
    ValidationIssue,
    WorkflowBlueprint,
)
from workflow_fsm.fsm.states import GenerationState
from workflow_fsm.pipeline.credentials import DEFAULT_MATCHER, CredentialMatcher
from workflow_fsm.pipeline.guards import DEFAULT_MAX_RETRIES, StageGuards
from workflow_fsm.utils.logging import get_logger
from workflow_fsm.utils.result import Err, ErrorKind, Ok, Result, StageError

logger = get_logger("fsm.machine")

StageResult = Result[GenerationState, StageError]

BlueprintLike = Union[WorkflowBlueprint, Mapping[str, Any], None]

# States from which ensure_state_for_building has nothing left to do
_BUILD_REACHED = frozenset({
    GenerationState.BUILDING,
    GenerationState.WORKFLOW_BUILT,
    GenerationState.WAITING_CONFIRMATION,
    GenerationState.CONFIRMED,
    GenerationState.VALIDATION,
    GenerationState.READY,
})

# States from which mark_workflow_ready may uplift when a blueprint exists
_READY_UPLIFT_FROM = frozenset({
    GenerationState.UNDERSTANDING_CONFIRMED,
    GenerationState.CREDENTIAL_COLLECTION,
    GenerationState.BUILDING,
})


class GenerationStateMachine(TransitionEngine):
    """
    Finite State Machine for one workflow-generation session.

    Each public operation corresponds to one user action in the generation
    wizard, enforces its stage gate on top of the transition table, and
    returns a Result. The machine performs no I/O; the orchestrator feeds the
    output of prompt analysis, credential discovery, the builder and the
    validator back in through these operations.
    """

    def __init__(
        self,
        session_id: Optional[str] = None,
        debug_mode: bool = False,
        uplift_mode: UpliftMode = UpliftMode.LENIENT,
        max_retries: int = DEFAULT_MAX_RETRIES,
        matcher: Optional[CredentialMatcher] = None,
    ) -> None:
        """
        Initialize the machine.

        Args:
            session_id: Identifier of the owning session (generated if omitted)
            debug_mode: Emit per-transition debug events
            uplift_mode: Lenient or strict handling of unconfirmed understanding
            max_retries: Build retries allowed before retry is exhausted
            matcher: Credential-name matcher (built-in alias table by default)

        Raises:
            ValueError: If max_retries is outside 0..DEFAULT_MAX_RETRIES
        """
        if not 0 <= max_retries <= DEFAULT_MAX_RETRIES:
            raise ValueError(
                f"max_retries must be between 0 and {DEFAULT_MAX_RETRIES}, got {max_retries}"
            )
        super().__init__(session_id=session_id, debug_mode=debug_mode)
        self.uplift_mode = uplift_mode
        self.max_retries = max_retries
        self.matcher = matcher or DEFAULT_MATCHER

    @classmethod
    def from_config(
        cls,
        config: GenerationConfig,
        session_id: Optional[str] = None,
    ) -> GenerationStateMachine:
        """Create a machine using values from ``config``."""
        matcher = (
            CredentialMatcher(config.credential_aliases)
            if config.credential_aliases
            else DEFAULT_MATCHER
        )
        return cls(
            session_id=session_id,
            debug_mode=config.debug_mode,
            uplift_mode=config.uplift_mode,
            max_retries=config.max_retries,
            matcher=matcher,
        )

    @property
    def guards(self) -> StageGuards:
        return StageGuards(self._snapshot, self.matcher, self.max_retries)

    @property
    def retry_count(self) -> int:
        return self._snapshot.retry_count

    @property
    def is_strict(self) -> bool:
        return self.uplift_mode is UpliftMode.STRICT

    def _run_steps(self, *steps: Callable[[], StageResult]) -> StageResult:
        """Run operations in order, stopping at the first failure."""
        result: StageResult = Ok(self.current_state)
        for step in steps:
            result = step()
            if result.is_err():
                return result
        return result

    # Understanding phase

    def set_user_prompt(self, text: str) -> StageResult:
        """Store the user's prompt and move IDLE -> PROMPT_RECEIVED."""
        stage = self.guards.check_stage("set user prompt", (GenerationState.IDLE,))
        if stage.is_err():
            return stage

        self._snapshot.user_prompt = text
        return self.transition_to(GenerationState.PROMPT_RECEIVED, "User prompt received")

    def set_clarifying_questions(
        self,
        questions: Iterable[Union[ClarifyingQuestion, dict]],
    ) -> StageResult:
        """Store clarifying questions; opens clarification from PROMPT_RECEIVED."""
        self._snapshot.clarifying_questions = [
            ClarifyingQuestion.coerce(q) for q in questions
        ]
        if self.current_state is GenerationState.PROMPT_RECEIVED:
            return self.transition_to(
                GenerationState.CLARIFICATION_ACTIVE,
                "Clarifying questions generated",
            )
        return Ok(self.current_state)

    def set_clarifying_answers(self, answers: Mapping[str, str]) -> StageResult:
        """Store answers keyed by question id (no transition)."""
        self._snapshot.clarifying_answers = {
            str(question_id): str(answer) for question_id, answer in answers.items()
        }
        return Ok(self.current_state)

    def confirm_understanding(self, text: str) -> StageResult:
        """Record the confirmed understanding and move to UNDERSTANDING_CONFIRMED."""
        stage = self.guards.check_stage(
            "confirm understanding",
            (GenerationState.PROMPT_RECEIVED, GenerationState.CLARIFICATION_ACTIVE),
        )
        if stage.is_err():
            return stage

        if not text or not text.strip():
            return Err(StageError(
                kind=ErrorKind.PRECONDITION_FAILED,
                message="Cannot confirm understanding: final understanding is empty",
                requires_confirmation=True,
            ))

        self._snapshot.final_understanding = text
        logger.info(
            "understanding_confirmed",
            session_id=self.session_id,
            understanding=text[:100],
        )
        return self.transition_to(
            GenerationState.UNDERSTANDING_CONFIRMED,
            "Understanding confirmed by user",
        )

    # Credential phase

    def set_required_credentials(self, names: Union[str, Iterable[str]]) -> StageResult:
        """
        Store the credentials the workflow needs.

        Opens credential collection after the understanding is confirmed, and
        sends a build back to collection when a requirement is discovered late.
        A single string is one credential name.
        """
        if isinstance(names, str):
            names = [names]
        required: list[str] = []
        for name in names:
            name = name.strip()
            if name and name not in required:
                required.append(name)
        self._snapshot.credentials_required = required

        if self.current_state is GenerationState.UNDERSTANDING_CONFIRMED:
            return self.transition_to(
                GenerationState.CREDENTIAL_COLLECTION,
                "Credentials required identified",
            )
        if self.current_state is GenerationState.BUILDING and required:
            return self.transition_to(
                GenerationState.CREDENTIAL_COLLECTION,
                "Credentials required detected during building",
            )
        return Ok(self.current_state)

    def set_provided_credentials(self, values: Mapping[str, str]) -> StageResult:
        """Store user-provided credential values (no transition)."""
        self._snapshot.credentials_provided = dict(values)
        return Ok(self.current_state)

    # Build phase

    def start_building(self) -> StageResult:
        """
        Move to BUILDING once understanding, credentials and stage all allow it.

        Failures are distinguishable by kind: CONFIRMATION_REQUIRED (with
        ``requires_confirmation``), MISSING_CREDENTIALS (with the names) or
        WRONG_STAGE.
        """
        ready = self.guards.check_build_ready()
        if ready.is_err():
            return ready

        return self.transition_to(GenerationState.BUILDING, "Workflow building started")

    def set_workflow_blueprint(
        self,
        blueprint: BlueprintLike,
        require_confirmation: bool = False,
    ) -> StageResult:
        """
        Attach the builder's blueprint and leave the build stage.

        Args:
            blueprint: Node/edge graph (WorkflowBlueprint or mapping)
            require_confirmation: Stop at WORKFLOW_BUILT for the
                confirm-before-validate checkpoint instead of VALIDATION

        Returns:
            Ok(new_state) or Err(StageError)
        """
        current = self.current_state
        if current is not GenerationState.BUILDING:
            ensured = self.ensure_state_for_building()
            if ensured.is_err():
                error = ensured.unwrap_err()
                return Err(dataclasses.replace(
                    error,
                    message=(
                        f"Cannot set workflow blueprint: current state is "
                        f"{current.name}, must be BUILDING. {error.message}"
                    ),
                ))
            if self.current_state is not GenerationState.BUILDING:
                return Err(StageError(
                    kind=ErrorKind.WRONG_STAGE,
                    message=(
                        f"Cannot set workflow blueprint: current state is "
                        f"{self.current_state.name}, must be BUILDING."
                    ),
                ))

        self._snapshot.blueprint = WorkflowBlueprint.coerce(blueprint)

        if require_confirmation:
            return self.transition_to(
                GenerationState.WORKFLOW_BUILT,
                "Workflow blueprint generated, awaiting confirmation",
            )
        return self.transition_to(
            GenerationState.VALIDATION,
            "Workflow blueprint generated, awaiting validation",
        )

    def retry_building(self) -> StageResult:
        """
        Count a build retry while staying in BUILDING.

        Clears the blueprint and validation errors for the rebuild. Once the
        retry budget is spent, returns Err with ``should_transition_to_error``
        and changes nothing; diverting is left to the caller.
        """
        stage = self.guards.check_stage("retry building", (GenerationState.BUILDING,))
        if stage.is_err():
            return stage

        budget = self.guards.check_retry_budget()
        if budget.is_err():
            return budget

        self._snapshot.retry_count += 1
        self._snapshot.blueprint = WorkflowBlueprint()
        self._snapshot.validation_errors = []

        logger.info(
            "build_retry",
            session_id=self.session_id,
            attempt=self._snapshot.retry_count,
            max_retries=self.max_retries,
        )
        return Ok(self.current_state)

    def return_to_building(self, reason: str = "Rebuilding after validation") -> StageResult:
        """Send a workflow that failed validation back to BUILDING."""
        stage = self.guards.check_stage("return to building", (GenerationState.VALIDATION,))
        if stage.is_err():
            return stage
        return self.transition_to(GenerationState.BUILDING, reason)

    # Confirm-before-validate checkpoint

    def mark_waiting_for_confirmation(self) -> StageResult:
        stage = self.guards.check_stage(
            "mark waiting for confirmation", (GenerationState.WORKFLOW_BUILT,)
        )
        if stage.is_err():
            return stage
        return self.transition_to(
            GenerationState.WAITING_CONFIRMATION, "Waiting for user confirmation"
        )

    def confirm_workflow(self) -> StageResult:
        stage = self.guards.check_stage(
            "confirm workflow", (GenerationState.WAITING_CONFIRMATION,)
        )
        if stage.is_err():
            return stage
        return self.transition_to(GenerationState.CONFIRMED, "Workflow confirmed by user")

    def reject_workflow(self) -> StageResult:
        stage = self.guards.check_stage(
            "reject workflow", (GenerationState.WAITING_CONFIRMATION,)
        )
        if stage.is_err():
            return stage
        return self.transition_to(GenerationState.REJECTED, "Workflow rejected by user")

    def move_to_validation_from_confirmed(self) -> StageResult:
        stage = self.guards.check_stage(
            "move to validation", (GenerationState.CONFIRMED,)
        )
        if stage.is_err():
            return stage
        return self.transition_to(
            GenerationState.VALIDATION, "Moving to validation after confirmation"
        )

    # Validation phase

    def add_validation_error(self, issue: Union[ValidationIssue, dict]) -> StageResult:
        """Record a validator finding (no transition)."""
        self._snapshot.validation_errors.append(ValidationIssue.coerce(issue))
        return Ok(self.current_state)

    def clear_validation_errors(self) -> StageResult:
        self._snapshot.validation_errors = []
        return Ok(self.current_state)

    def mark_workflow_ready(self) -> StageResult:
        """
        Move VALIDATION -> READY when no validation errors remain and the
        blueprint has nodes.

        In lenient mode a caller whose explicit transition calls lagged is
        uplifted first: a non-empty blueprint in UNDERSTANDING_CONFIRMED,
        CREDENTIAL_COLLECTION or BUILDING counts as a completed build, and the
        confirmation checkpoint states are walked forward to VALIDATION.
        """
        current = self.current_state

        if not self.is_strict:
            uplift = self._uplift_for_ready(current)
            if uplift.is_err():
                return uplift

        return self._run_steps(
            lambda: self.guards.check_stage(
                "mark workflow as ready", (GenerationState.VALIDATION,)
            ).map(lambda _: self.current_state),
            lambda: self.guards.check_validation_clear().map(lambda _: self.current_state),
            lambda: self.guards.check_blueprint_nodes().map(lambda _: self.current_state),
            lambda: self.transition_to(
                GenerationState.READY, "Workflow validated and ready"
            ),
        )

    def _uplift_for_ready(self, current: GenerationState) -> StageResult:
        if current in _READY_UPLIFT_FROM:
            if not self._snapshot.blueprint.has_nodes():
                return Err(StageError(
                    kind=ErrorKind.PRECONDITION_FAILED,
                    message=(
                        f"Cannot mark workflow as ready: current state is "
                        f"{current.name} and no workflow blueprint exists. "
                        "Workflow must be built first."
                    ),
                ))

            logger.warning(
                "uplift_to_validation",
                session_id=self.session_id,
                from_state=current.name,
            )
            steps: list[Callable[[], StageResult]] = []
            if current is not GenerationState.BUILDING:
                steps.append(lambda: self.guards.check_credentials().map(
                    lambda _: self.current_state
                ))
                steps.append(lambda: self.transition_to(
                    GenerationState.BUILDING,
                    "Auto-transitioning to building (blueprint exists)",
                ))
            steps.append(lambda: self.transition_to(
                GenerationState.VALIDATION,
                "Auto-transitioning to validation (blueprint exists)",
            ))
            return self._run_steps(*steps)

        if current is GenerationState.WORKFLOW_BUILT:
            return self._run_steps(
                self.mark_waiting_for_confirmation,
                self.confirm_workflow,
                self.move_to_validation_from_confirmed,
            )
        if current is GenerationState.WAITING_CONFIRMATION:
            return self._run_steps(
                self.confirm_workflow,
                self.move_to_validation_from_confirmed,
            )
        if current is GenerationState.CONFIRMED:
            return self.move_to_validation_from_confirmed()

        return Ok(current)

    # Error recovery

    def resume_clarification(self) -> StageResult:
        """Restart an errored session from clarification, keeping its data."""
        stage = self.guards.check_stage(
            "resume clarification", (GenerationState.ERROR_HANDLING,)
        )
        if stage.is_err():
            return stage
        return self.transition_to(
            GenerationState.CLARIFICATION_ACTIVE, "Restarting from clarification"
        )

    # Uplift helpers

    def ensure_state_for_building(self) -> StageResult:
        """
        Walk forward to BUILDING through whichever optional stages remain.

        Idempotent: from BUILDING or any later non-terminal-failure state it
        returns Ok without transitioning. In lenient mode an unconfirmed
        clarification adopts the user prompt as its understanding rather than
        blocking; strict mode requires explicit confirmation.
        """
        current = self.current_state

        if current in _BUILD_REACHED:
            return Ok(current)

        if current in (GenerationState.IDLE, GenerationState.PROMPT_RECEIVED):
            return Err(StageError(
                kind=ErrorKind.CONFIRMATION_REQUIRED,
                message="Cannot build: understanding not confirmed",
                requires_confirmation=True,
            ))

        if current is GenerationState.CLARIFICATION_ACTIVE:
            if self._snapshot.final_understanding.strip():
                confirmed = self.confirm_understanding(self._snapshot.final_understanding)
                if confirmed.is_err():
                    return confirmed
            else:
                return self._build_without_confirmation()

        if self.current_state is GenerationState.UNDERSTANDING_CONFIRMED:
            if not self._snapshot.credentials_required:
                return self.start_building()
            moved = self.transition_to(
                GenerationState.CREDENTIAL_COLLECTION,
                "Moving to credential collection",
            )
            if moved.is_err():
                return moved

        if self.current_state is GenerationState.CREDENTIAL_COLLECTION:
            return self.start_building()

        return Err(StageError(
            kind=ErrorKind.WRONG_STAGE,
            message=f"Invalid state for building: {self.current_state.name}",
        ))

    def _build_without_confirmation(self) -> StageResult:
        if self.is_strict:
            return self.guards.check_understanding().map(lambda _: self.current_state)

        prompt = self._snapshot.user_prompt.strip()
        if not prompt:
            return Err(StageError(
                kind=ErrorKind.CONFIRMATION_REQUIRED,
                message="Cannot build: no prompt or understanding to build from",
                requires_confirmation=True,
            ))

        credentials = self.guards.check_credentials()
        if credentials.is_err():
            return credentials

        logger.warning(
            "uplift_lenient",
            session_id=self.session_id,
            detail="no confirmed understanding; building from the user prompt",
        )
        self._snapshot.final_understanding = self._snapshot.user_prompt
        return self.transition_to(
            GenerationState.BUILDING, "Building with partial understanding"
        )

    def move_to_validation(
        self,
        blueprint: BlueprintLike,
        skip_confirmation: bool = False,
    ) -> StageResult:
        """
        Reach VALIDATION from wherever the build currently stands.

        From BUILDING the blueprint is attached and, unless
        ``skip_confirmation``, the confirmation checkpoint is walked
        (WORKFLOW_BUILT -> WAITING_CONFIRMATION -> CONFIRMED). Earlier states
        are uplifted with ensure_state_for_building first. Steps are not
        rolled back: a failure leaves the machine where the last committed
        step put it.
        """
        current = self.current_state

        if current is GenerationState.VALIDATION:
            return Ok(current)

        if current is GenerationState.BUILDING:
            if skip_confirmation:
                return self.set_workflow_blueprint(blueprint)
            return self._run_steps(
                lambda: self.set_workflow_blueprint(blueprint, require_confirmation=True),
                self.mark_waiting_for_confirmation,
                self.confirm_workflow,
                self.move_to_validation_from_confirmed,
            )

        if current is GenerationState.WORKFLOW_BUILT:
            if skip_confirmation:
                return self.transition_to(
                    GenerationState.VALIDATION,
                    "Skipping confirmation, moving directly to validation",
                )
            return self._run_steps(
                self.mark_waiting_for_confirmation,
                self.confirm_workflow,
                self.move_to_validation_from_confirmed,
            )

        if current is GenerationState.WAITING_CONFIRMATION:
            return self._run_steps(
                self.confirm_workflow,
                self.move_to_validation_from_confirmed,
            )

        if current is GenerationState.CONFIRMED:
            return self.move_to_validation_from_confirmed()

        ensured = self.ensure_state_for_building()
        if ensured.is_err():
            return ensured
        if self.current_state is not GenerationState.BUILDING:
            return Err(StageError(
                kind=ErrorKind.WRONG_STAGE,
                message=f"Cannot move to validation from state: {self.current_state.name}",
            ))
        return self.move_to_validation(blueprint, skip_confirmation)

    def move_to_ready(self) -> StageResult:
        """Reach READY from BUILDING or VALIDATION using the stored blueprint."""
        current = self.current_state

        if current is GenerationState.READY:
            return Ok(current)

        if current is GenerationState.VALIDATION:
            return self.mark_workflow_ready()

        if current is GenerationState.BUILDING:
            return self._run_steps(
                lambda: self.guards.check_blueprint_nodes().map(lambda _: current),
                lambda: self.move_to_validation(self._snapshot.blueprint, skip_confirmation=True),
                self.mark_workflow_ready,
            )

        return Err(StageError(
            kind=ErrorKind.WRONG_STAGE,
            message=f"Cannot mark ready from state: {current.name}",
        ))
