"""Per-session ownership of generation state machines."""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Any, Iterator, Optional

from workflow_fsm.config.settings import GenerationConfig
from workflow_fsm.fsm.machine import GenerationStateMachine, StageResult
from workflow_fsm.fsm.snapshot import PipelineSnapshot
from workflow_fsm.fsm.states import GenerationState
from workflow_fsm.pipeline.credentials import CredentialMatcher
from workflow_fsm.utils.logging import clear_session_context, get_logger, set_session_context

logger = get_logger("registry.sessions")

# Operations an orchestrator may dispatch by name
OPERATIONS = frozenset({
    "set_user_prompt",
    "set_clarifying_questions",
    "set_clarifying_answers",
    "confirm_understanding",
    "set_required_credentials",
    "set_provided_credentials",
    "start_building",
    "set_workflow_blueprint",
    "mark_waiting_for_confirmation",
    "confirm_workflow",
    "reject_workflow",
    "move_to_validation_from_confirmed",
    "add_validation_error",
    "clear_validation_errors",
    "mark_workflow_ready",
    "retry_building",
    "return_to_building",
    "resume_clarification",
    "transition_to",
    "transition_to_error",
    "handle_error",
    "reset",
    "ensure_state_for_building",
    "move_to_validation",
    "move_to_ready",
})


class UnknownOperationError(ValueError):
    """Operation name is not a dispatchable state-machine operation."""

    def __init__(self, operation: str) -> None:
        self.operation = operation
        super().__init__(f"Unknown operation: {operation}")


class SessionRegistry:
    """
    Owns one GenerationStateMachine per generation session.

    Calls for a session are serialized by that session's lock; different
    sessions never share a machine or a snapshot.
    """

    def __init__(self, config: Optional[GenerationConfig] = None) -> None:
        """
        Initialize the registry.

        Args:
            config: Configuration applied to every machine created here
        """
        self.config = config or GenerationConfig()
        self._machines: dict[str, GenerationStateMachine] = {}
        self._locks: dict[str, threading.RLock] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._machines)

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._machines

    def create(self, session_id: Optional[str] = None) -> GenerationStateMachine:
        """
        Register a new session, or return the existing one for ``session_id``.

        Args:
            session_id: Session identifier (generated if omitted)

        Returns:
            The session's state machine
        """
        with self._lock:
            if session_id is not None and session_id in self._machines:
                return self._machines[session_id]

            machine = GenerationStateMachine.from_config(self.config, session_id=session_id)
            self._machines[machine.session_id] = machine
            self._locks[machine.session_id] = threading.RLock()

        logger.info("session_created", session_id=machine.session_id)
        return machine

    def get(self, session_id: str) -> Optional[GenerationStateMachine]:
        """Get the machine for a session, if registered."""
        with self._lock:
            return self._machines.get(session_id)

    def _require(self, session_id: str) -> tuple[GenerationStateMachine, threading.RLock]:
        with self._lock:
            if session_id not in self._machines:
                raise KeyError(f"Session not registered: {session_id}")
            return self._machines[session_id], self._locks[session_id]

    @contextmanager
    def session(self, session_id: str) -> Iterator[GenerationStateMachine]:
        """
        Hold a session's lock while the caller drives its machine.

        Raises:
            KeyError: If the session is not registered
        """
        machine, lock = self._require(session_id)
        with lock:
            set_session_context(session_id)
            try:
                yield machine
            finally:
                clear_session_context()

    def apply(self, session_id: str, operation: str, *args: Any, **kwargs: Any) -> StageResult:
        """
        Run one named operation against a session under its lock.

        Raises:
            KeyError: If the session is not registered
            UnknownOperationError: If ``operation`` is not dispatchable
        """
        if operation not in OPERATIONS:
            raise UnknownOperationError(operation)

        machine, lock = self._require(session_id)
        with lock:
            set_session_context(session_id, operation)
            try:
                return getattr(machine, operation)(*args, **kwargs)
            finally:
                clear_session_context()

    def discard(self, session_id: str) -> None:
        """Drop an abandoned or finished session."""
        with self._lock:
            self._machines.pop(session_id, None)
            self._locks.pop(session_id, None)
        logger.info("session_discarded", session_id=session_id)

    def export(self, session_id: str) -> dict:
        """Serialize a session's snapshot."""
        with self.session(session_id) as machine:
            return machine.get_snapshot().to_dict()

    def restore(self, data: dict) -> GenerationStateMachine:
        """Register a machine rebuilt from a serialized snapshot, replacing any existing one."""
        snapshot = PipelineSnapshot.from_dict(data)
        machine = GenerationStateMachine.from_snapshot(
            snapshot,
            uplift_mode=self.config.uplift_mode,
            max_retries=self.config.max_retries,
            matcher=(
                CredentialMatcher(self.config.credential_aliases)
                if self.config.credential_aliases
                else None
            ),
        )
        with self._lock:
            self._machines[machine.session_id] = machine
            self._locks.setdefault(machine.session_id, threading.RLock())

        logger.info(
            "session_restored",
            session_id=machine.session_id,
            state=machine.current_state.name,
        )
        return machine

    def get_by_state(self, state: GenerationState) -> list[GenerationStateMachine]:
        """Get all sessions currently in ``state``."""
        return [m for m in self._registered() if m.current_state is state]

    def progress_summary(self) -> dict[str, int]:
        """Get a count of sessions by state name."""
        summary: dict[str, int] = {}
        for machine in self._registered():
            name = machine.current_state.name
            summary[name] = summary.get(name, 0) + 1
        return summary

    def _registered(self) -> list[GenerationStateMachine]:
        # Copy under the map lock; create/discard/restore resize the dict
        with self._lock:
            return list(self._machines.values())
