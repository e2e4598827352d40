"""Transition engine: applies table-checked transitions and absorbs illegal ones."""

from __future__ import annotations

from typing import Optional, Union

from workflow_fsm.fsm.snapshot import PipelineSnapshot
from workflow_fsm.fsm.states import (
    GenerationState,
    HistoryEntry,
    TransitionCheck,
    check_transition,
)
from workflow_fsm.utils.logging import get_logger
from workflow_fsm.utils.result import Err, ErrorKind, Ok, Result, StageError

logger = get_logger("fsm.engine")

DEFAULT_REASON = "State transition"


class TransitionEngine:
    """
    Owns one session's snapshot and is the only writer of its state/history.

    Illegal transitions never raise: they are diverted into ERROR_HANDLING
    with ``last_error`` describing what was attempted.
    """

    def __init__(
        self,
        session_id: Optional[str] = None,
        debug_mode: bool = False,
    ) -> None:
        """
        Initialize the engine with a fresh snapshot.

        Args:
            session_id: Identifier of the owning session (generated if omitted)
            debug_mode: Emit per-transition debug events
        """
        self._snapshot = PipelineSnapshot.fresh(session_id, debug_mode)

    @classmethod
    def from_snapshot(cls, snapshot: PipelineSnapshot, **kwargs) -> TransitionEngine:
        """Rebuild an engine around a previously serialized snapshot."""
        engine = cls(session_id=snapshot.session_id, debug_mode=snapshot.debug_mode, **kwargs)
        engine._snapshot = snapshot.copy()
        return engine

    @property
    def session_id(self) -> str:
        return self._snapshot.session_id

    @property
    def current_state(self) -> GenerationState:
        return self._snapshot.current_state

    @property
    def debug_mode(self) -> bool:
        return self._snapshot.debug_mode

    def get_snapshot(self) -> PipelineSnapshot:
        """Read-only copy of the current snapshot."""
        return self._snapshot.copy()

    def get_state_history(self) -> list[HistoryEntry]:
        """Copy of the transition history (entries are immutable)."""
        return list(self._snapshot.history)

    def is_terminal_state(self) -> bool:
        """True in READY or REJECTED, the states with no outgoing edges."""
        return self._snapshot.current_state.is_terminal()

    def is_error_state(self) -> bool:
        return self._snapshot.current_state.is_error()

    def can_transition_to(self, target: GenerationState) -> TransitionCheck:
        """Check whether ``target`` is reachable in one step from the current state."""
        return check_transition(self._snapshot.current_state, target)

    def _record(self, state: GenerationState, reason: str) -> None:
        previous = self._snapshot.current_state
        self._snapshot.history.append(HistoryEntry(state=state, reason=reason))
        self._snapshot.current_state = state

        logger.info(
            "state_transition",
            session_id=self.session_id,
            from_state=previous.name,
            to_state=state.name,
            reason=reason,
        )
        if self.debug_mode:
            logger.debug(
                "state_history",
                session_id=self.session_id,
                history_length=len(self._snapshot.history),
            )

    def transition_to(
        self,
        target: Union[GenerationState, str],
        reason: str = DEFAULT_REASON,
    ) -> Result[GenerationState, StageError]:
        """
        Transition to ``target`` if the table allows it.

        An illegal target diverts the machine to ERROR_HANDLING and returns
        Err with ``diverted=True``. Already in ERROR_HANDLING, an illegal
        target only updates ``last_error`` and returns Err. Unexpected
        failures are diverted as internal errors.

        Args:
            target: Target state (a GenerationState or its name/value)
            reason: Reason recorded in history

        Returns:
            Ok(new_state) or Err(StageError)
        """
        try:
            if isinstance(target, str):
                target = GenerationState.parse(target)

            check = self.can_transition_to(target)
            if not check.valid:
                logger.warning(
                    "invalid_transition",
                    session_id=self.session_id,
                    from_state=self.current_state.name,
                    to_state=target.name,
                )
                if self.is_error_state():
                    message = check.reason or "Invalid state transition"
                    self._snapshot.last_error = message
                    return Err(StageError(
                        kind=ErrorKind.INVALID_TRANSITION,
                        message=message,
                    ))

                message = f"Invalid transition: {check.reason}"
                self.transition_to_error(message)
                return Err(StageError(
                    kind=ErrorKind.INVALID_TRANSITION,
                    message=message,
                    diverted=True,
                ))

            self._record(target, reason or DEFAULT_REASON)
            return Ok(target)

        except Exception as e:
            logger.exception(
                "transition_failed",
                session_id=self.session_id,
                error=str(e),
            )
            message = f"Transition error: {e}"
            self.transition_to_error(message)
            return Err(StageError(
                kind=ErrorKind.INTERNAL_ERROR,
                message=message,
                diverted=True,
            ))

    def transition_to_error(self, message: str) -> Result[GenerationState, StageError]:
        """
        Divert to ERROR_HANDLING from any state.

        Records one history entry per call, including when already in
        ERROR_HANDLING, so every reported failure stays auditable.
        """
        try:
            self._snapshot.last_error = message
            logger.error(
                "transition_diverted",
                session_id=self.session_id,
                from_state=self.current_state.name,
                error=message,
            )
            self._record(GenerationState.ERROR_HANDLING, f"Error: {message}")
            return Ok(GenerationState.ERROR_HANDLING)
        except Exception as e:
            logger.exception("error_transition_failed", session_id=self.session_id)
            return Err(StageError(
                kind=ErrorKind.INTERNAL_ERROR,
                message=f"Critical state machine error: {e}",
            ))

    def handle_error(self, message: str) -> Result[GenerationState, StageError]:
        """Alias for transition_to_error."""
        return self.transition_to_error(message)

    safe_transition_to_error = handle_error

    def reset(self) -> Result[GenerationState, StageError]:
        """Reinitialize the snapshot (same session id) from any state."""
        self._snapshot = PipelineSnapshot.fresh(self.session_id, self.debug_mode)
        logger.info("session_reset", session_id=self.session_id)
        return Ok(GenerationState.IDLE)
