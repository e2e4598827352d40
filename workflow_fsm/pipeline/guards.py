"""Stage guards - precondition checks layered on top of the transition table.

Guards never relax the transition table; they add stage-specific conditions
(confirmed understanding, satisfied credentials, no outstanding validation
errors) that must hold before a guarded operation is allowed to transition.
A failing guard leaves the snapshot untouched.
"""

from __future__ import annotations

from typing import Iterable

from workflow_fsm.config.settings import MAX_RETRIES
from workflow_fsm.fsm.snapshot import PipelineSnapshot
from workflow_fsm.fsm.states import GenerationState
from workflow_fsm.pipeline.credentials import DEFAULT_MATCHER, CredentialMatcher
from workflow_fsm.utils.logging import get_logger
from workflow_fsm.utils.result import Err, ErrorKind, Ok, Result, StageError

logger = get_logger("pipeline.guards")

DEFAULT_MAX_RETRIES = MAX_RETRIES


class StageGuards:
    """
    Precondition checks for the guarded stage operations.

    Each guard returns a Result - Ok(None) if the check passes,
    Err(StageError) if it fails.
    """

    def __init__(
        self,
        snapshot: PipelineSnapshot,
        matcher: CredentialMatcher = DEFAULT_MATCHER,
        max_retries: int = DEFAULT_MAX_RETRIES,
    ) -> None:
        """
        Initialize guards.

        Args:
            snapshot: Snapshot the guards inspect (never mutated)
            matcher: Credential-name matcher for the credential gate
            max_retries: Build retries allowed before retry is exhausted
        """
        self.snapshot = snapshot
        self.matcher = matcher
        self.max_retries = max_retries

    def _fail(self, guard: str, error: StageError) -> Err[StageError]:
        logger.warning(
            "guard_failed",
            guard=guard,
            kind=error.kind.value,
            state=self.snapshot.current_state.name,
            message=error.message,
        )
        return Err(error)

    def check_stage(
        self,
        operation: str,
        allowed: Iterable[GenerationState],
    ) -> Result[None, StageError]:
        """
        Check that the current state is one of ``allowed``.

        Args:
            operation: Operation name for the error message
            allowed: States the operation may run from

        Returns:
            Ok(None) if in an allowed state, Err(StageError) otherwise
        """
        allowed = tuple(allowed)
        current = self.snapshot.current_state
        if current in allowed:
            return Ok(None)

        names = " or ".join(s.name for s in allowed)
        return self._fail("stage", StageError(
            kind=ErrorKind.WRONG_STAGE,
            message=(
                f"Cannot {operation} from state {current.name}. "
                f"Must be in {names}."
            ),
        ))

    def check_understanding(self) -> Result[None, StageError]:
        """Check that the understanding has been confirmed (non-empty)."""
        if self.snapshot.final_understanding.strip():
            return Ok(None)

        return self._fail("understanding", StageError(
            kind=ErrorKind.CONFIRMATION_REQUIRED,
            message=(
                "Cannot build workflow: understanding must be confirmed before "
                "building. Please confirm your understanding of the workflow "
                "requirements."
            ),
            requires_confirmation=True,
        ))

    def check_credentials(self) -> Result[None, StageError]:
        """Check that every required credential has a provided value."""
        missing = self.matcher.missing(
            self.snapshot.credentials_required,
            self.snapshot.credentials_provided,
        )
        if not missing:
            return Ok(None)

        return self._fail("credentials", StageError(
            kind=ErrorKind.MISSING_CREDENTIALS,
            message=(
                "Cannot build workflow: missing required credentials: "
                + ", ".join(missing)
            ),
            missing_credentials=tuple(missing),
        ))

    def check_build_ready(self) -> Result[None, StageError]:
        """
        Run the start-building gates in order.

        Understanding comes first so an unconfirmed session is always routed
        back to confirmation, whatever its credentials or stage.
        """
        for check in (
            self.check_understanding,
            self.check_credentials,
            lambda: self.check_stage(
                "start building",
                (
                    GenerationState.UNDERSTANDING_CONFIRMED,
                    GenerationState.CREDENTIAL_COLLECTION,
                ),
            ),
        ):
            result = check()
            if result.is_err():
                return result
        return Ok(None)

    def check_validation_clear(self) -> Result[None, StageError]:
        """Check that the validator reported no outstanding errors."""
        count = len(self.snapshot.validation_errors)
        if count == 0:
            return Ok(None)

        return self._fail("validation", StageError(
            kind=ErrorKind.VALIDATION_OUTSTANDING,
            message=(
                f"Cannot mark workflow as ready: {count} validation "
                f"error{'s' if count != 1 else ''} remain"
            ),
        ))

    def check_blueprint_nodes(self) -> Result[None, StageError]:
        """Check that the blueprint holds at least one node."""
        if self.snapshot.blueprint.has_nodes():
            return Ok(None)

        return self._fail("blueprint", StageError(
            kind=ErrorKind.PRECONDITION_FAILED,
            message="Cannot mark workflow as ready: no workflow blueprint",
        ))

    def check_retry_budget(self) -> Result[None, StageError]:
        """Check that another build retry is allowed."""
        if self.snapshot.retry_count < self.max_retries:
            return Ok(None)

        logger.error(
            "retry_exhausted",
            retry_count=self.snapshot.retry_count,
            max_retries=self.max_retries,
        )
        return Err(StageError(
            kind=ErrorKind.RETRY_EXHAUSTED,
            message=(
                f"Maximum retry count ({self.max_retries}) reached. "
                "Moving to error handling."
            ),
            should_transition_to_error=True,
        ))
