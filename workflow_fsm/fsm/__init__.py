"""FSM for turning a user prompt into a validated workflow.

Each generation session moves through well-defined states:

    IDLE -> PROMPT_RECEIVED -> CLARIFICATION_ACTIVE -> UNDERSTANDING_CONFIRMED
         -> [CREDENTIAL_COLLECTION] -> BUILDING -> VALIDATION -> READY
                                          |
                                          v
                WORKFLOW_BUILT -> WAITING_CONFIRMATION -> CONFIRMED -> VALIDATION
                                          |
                                          v
                                       REJECTED

Terminal states: READY, REJECTED. Any illegal request diverts to
ERROR_HANDLING, from which a session can resume clarification or return to
IDLE.

The guarded operations live in ``workflow_fsm.fsm.machine``.
"""

from workflow_fsm.fsm.engine import TransitionEngine
from workflow_fsm.fsm.snapshot import (
    ClarifyingQuestion,
    PipelineSnapshot,
    ValidationIssue,
    WorkflowBlueprint,
)
from workflow_fsm.fsm.states import (
    ORDERED_TRANSITIONS,
    TRANSITIONS,
    GenerationState,
    HistoryEntry,
    TransitionCheck,
)
from workflow_fsm.fsm.wizard import state_to_wizard_step, wizard_step_to_state

__all__ = [
    # States
    "GenerationState",
    "HistoryEntry",
    "TransitionCheck",
    "TRANSITIONS",
    "ORDERED_TRANSITIONS",
    # Snapshot
    "PipelineSnapshot",
    "ClarifyingQuestion",
    "ValidationIssue",
    "WorkflowBlueprint",
    # Engine
    "TransitionEngine",
    # Wizard mapping
    "state_to_wizard_step",
    "wizard_step_to_state",
]
