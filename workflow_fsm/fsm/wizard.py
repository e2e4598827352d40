"""Mapping between FSM states and the wizard-step vocabulary of the UI layer."""

from __future__ import annotations

from types import MappingProxyType
from typing import Mapping

from workflow_fsm.fsm.states import GenerationState

WIZARD_STEPS = (
    "idle",
    "analyzing",
    "questioning",
    "refining",
    "confirmation",
    "credentials",
    "building",
    "complete",
)

STATE_TO_STEP: Mapping[GenerationState, str] = MappingProxyType({
    GenerationState.IDLE: "idle",
    GenerationState.PROMPT_RECEIVED: "analyzing",
    GenerationState.CLARIFICATION_ACTIVE: "questioning",
    GenerationState.UNDERSTANDING_CONFIRMED: "confirmation",
    GenerationState.CREDENTIAL_COLLECTION: "credentials",
    GenerationState.BUILDING: "building",
    GenerationState.WORKFLOW_BUILT: "building",
    GenerationState.WAITING_CONFIRMATION: "confirmation",
    GenerationState.CONFIRMED: "building",
    GenerationState.REJECTED: "idle",
    GenerationState.VALIDATION: "building",
    GenerationState.READY: "complete",
    GenerationState.ERROR_HANDLING: "idle",
})

STEP_TO_STATE: Mapping[str, GenerationState] = MappingProxyType({
    "idle": GenerationState.IDLE,
    "analyzing": GenerationState.PROMPT_RECEIVED,
    "questioning": GenerationState.CLARIFICATION_ACTIVE,
    "refining": GenerationState.CLARIFICATION_ACTIVE,
    "confirmation": GenerationState.UNDERSTANDING_CONFIRMED,
    "credentials": GenerationState.CREDENTIAL_COLLECTION,
    "building": GenerationState.BUILDING,
    "complete": GenerationState.READY,
})


def state_to_wizard_step(state: GenerationState) -> str:
    """Wizard step shown for ``state``."""
    return STATE_TO_STEP.get(state, "idle")


def wizard_step_to_state(step: str) -> GenerationState:
    """FSM state for a wizard step; unknown steps map to IDLE."""
    return STEP_TO_STATE.get(step.strip().lower(), GenerationState.IDLE)
