"""workflow-fsm: state machine for prompt-to-workflow generation sessions."""

__version__ = "0.1.0"

from workflow_fsm.config.settings import GenerationConfig, UpliftMode
from workflow_fsm.fsm.machine import GenerationStateMachine
from workflow_fsm.fsm.snapshot import PipelineSnapshot
from workflow_fsm.fsm.states import TRANSITIONS, GenerationState
from workflow_fsm.registry.sessions import SessionRegistry
from workflow_fsm.utils.result import Err, ErrorKind, Ok, StageError

__all__ = [
    "__version__",
    "GenerationConfig",
    "UpliftMode",
    "GenerationStateMachine",
    "GenerationState",
    "PipelineSnapshot",
    "TRANSITIONS",
    "SessionRegistry",
    "Ok",
    "Err",
    "ErrorKind",
    "StageError",
]
