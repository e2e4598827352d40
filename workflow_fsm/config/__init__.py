"""Configuration module for workflow-fsm."""

from workflow_fsm.config.settings import GenerationConfig, UpliftMode, load_config

__all__ = ["GenerationConfig", "UpliftMode", "load_config"]
