"""Pipeline stage gates for workflow-fsm."""

from workflow_fsm.pipeline.credentials import (
    CREDENTIAL_ALIASES,
    CredentialMatcher,
    canonical_name,
)
from workflow_fsm.pipeline.guards import StageGuards

__all__ = ["StageGuards", "CredentialMatcher", "CREDENTIAL_ALIASES", "canonical_name"]
