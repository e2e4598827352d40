"""FSM state definitions for workflow generation."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType
from typing import Mapping, Optional


class GenerationState(Enum):
    """States for the workflow-generation FSM."""

    # Initial state
    IDLE = "idle"

    # Understanding phase
    PROMPT_RECEIVED = "prompt_received"
    CLARIFICATION_ACTIVE = "clarification_active"
    UNDERSTANDING_CONFIRMED = "understanding_confirmed"
    CREDENTIAL_COLLECTION = "credential_collection"

    # Build phase
    BUILDING = "building"

    # Confirm-before-validate checkpoint
    WORKFLOW_BUILT = "workflow_built"
    WAITING_CONFIRMATION = "waiting_confirmation"
    CONFIRMED = "confirmed"
    REJECTED = "rejected"

    # Validation phase
    VALIDATION = "validation"
    READY = "ready"

    # Divergence target for anything illegal
    ERROR_HANDLING = "error_handling"

    def is_terminal(self) -> bool:
        """Check if this state has no outgoing transitions."""
        return not TRANSITIONS[self]

    def is_error(self) -> bool:
        """Check if this is the error-handling state."""
        return self is GenerationState.ERROR_HANDLING

    def is_success(self) -> bool:
        """Check if this is the success state."""
        return self is GenerationState.READY

    @classmethod
    def parse(cls, value: str) -> GenerationState:
        """Look up a state by value or member name, case-insensitively.

        Raises:
            ValueError: If no state matches
        """
        key = value.strip().lower()
        for state in cls:
            if key in (state.value, state.name.lower()):
                return state
        raise ValueError(f"Unknown state: {value}")


# Valid state transitions, in preference order
_ORDERED_TRANSITIONS: dict[GenerationState, tuple[GenerationState, ...]] = {
    GenerationState.IDLE: (GenerationState.PROMPT_RECEIVED,),
    GenerationState.PROMPT_RECEIVED: (
        GenerationState.CLARIFICATION_ACTIVE,
        GenerationState.UNDERSTANDING_CONFIRMED,
    ),
    GenerationState.CLARIFICATION_ACTIVE: (
        GenerationState.UNDERSTANDING_CONFIRMED,
        GenerationState.BUILDING,  # Lenient uplift only
    ),
    GenerationState.UNDERSTANDING_CONFIRMED: (
        GenerationState.CREDENTIAL_COLLECTION,
        GenerationState.BUILDING,
    ),
    GenerationState.CREDENTIAL_COLLECTION: (GenerationState.BUILDING,),
    GenerationState.BUILDING: (
        GenerationState.VALIDATION,
        GenerationState.WORKFLOW_BUILT,
        GenerationState.CREDENTIAL_COLLECTION,  # Late-discovered credential
        GenerationState.ERROR_HANDLING,
    ),
    GenerationState.WORKFLOW_BUILT: (
        GenerationState.WAITING_CONFIRMATION,
        GenerationState.VALIDATION,
        GenerationState.ERROR_HANDLING,
    ),
    GenerationState.WAITING_CONFIRMATION: (
        GenerationState.CONFIRMED,
        GenerationState.REJECTED,
        GenerationState.ERROR_HANDLING,
    ),
    GenerationState.CONFIRMED: (
        GenerationState.VALIDATION,
        GenerationState.ERROR_HANDLING,
    ),
    GenerationState.VALIDATION: (
        GenerationState.READY,
        GenerationState.BUILDING,
        GenerationState.ERROR_HANDLING,
    ),
    GenerationState.ERROR_HANDLING: (
        GenerationState.CLARIFICATION_ACTIVE,
        GenerationState.IDLE,
    ),
    # Terminal states have no transitions
    GenerationState.REJECTED: (),
    GenerationState.READY: (),
}

ORDERED_TRANSITIONS: Mapping[GenerationState, tuple[GenerationState, ...]] = (
    MappingProxyType(_ORDERED_TRANSITIONS)
)

TRANSITIONS: Mapping[GenerationState, frozenset[GenerationState]] = MappingProxyType(
    {state: frozenset(targets) for state, targets in _ORDERED_TRANSITIONS.items()}
)

# States in which an unconfirmed (empty) understanding is expected
PRE_UNDERSTANDING_STATES = frozenset({
    GenerationState.IDLE,
    GenerationState.PROMPT_RECEIVED,
    GenerationState.CLARIFICATION_ACTIVE,
})


@dataclass(frozen=True)
class TransitionCheck:
    """Outcome of a legality query against the transition table."""

    valid: bool
    reason: Optional[str] = None


def check_transition(
    current: GenerationState,
    target: GenerationState,
) -> TransitionCheck:
    """Check whether current -> target is an edge of the transition table."""
    if target in TRANSITIONS[current]:
        return TransitionCheck(valid=True)

    allowed = ", ".join(s.name for s in ORDERED_TRANSITIONS[current]) or "none"
    return TransitionCheck(
        valid=False,
        reason=(
            f"Invalid transition from {current.name} to {target.name}. "
            f"Allowed states: {allowed}"
        ),
    )


@dataclass(frozen=True)
class HistoryEntry:
    """One applied transition (or divergence) in a session's history."""

    state: GenerationState
    reason: str
    timestamp: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc)
    )

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "state": self.state.value,
            "timestamp": self.timestamp.isoformat(),
            "reason": self.reason,
        }

    @classmethod
    def from_dict(cls, data: dict) -> HistoryEntry:
        """Create from dictionary."""
        return cls(
            state=GenerationState(data["state"]),
            reason=data.get("reason", ""),
            timestamp=datetime.fromisoformat(data["timestamp"]),
        )
