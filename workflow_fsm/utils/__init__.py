"""Utility modules for workflow-fsm."""

from workflow_fsm.utils.logging import (
    clear_session_context,
    configure_logging,
    get_logger,
    set_session_context,
)
from workflow_fsm.utils.result import (
    ConfigError,
    Err,
    ErrorKind,
    ExitCode,
    Ok,
    Result,
    ResultError,
    StageError,
)

__all__ = [
    # Logging
    "configure_logging",
    "get_logger",
    "set_session_context",
    "clear_session_context",
    # Results
    "Ok",
    "Err",
    "Result",
    "ResultError",
    "ErrorKind",
    "StageError",
    "ConfigError",
    "ExitCode",
]
