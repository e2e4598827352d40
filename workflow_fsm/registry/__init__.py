"""Session registry for workflow-fsm."""

from workflow_fsm.registry.sessions import (
    OPERATIONS,
    SessionRegistry,
    UnknownOperationError,
)

__all__ = ["SessionRegistry", "UnknownOperationError", "OPERATIONS"]
