"""Centralized configuration for the workflow-generation state machine.

Configuration can be loaded from a YAML file and is validated before use.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Optional

import yaml

from workflow_fsm.utils.logging import LOG_LEVELS
from workflow_fsm.utils.result import ConfigError, Err, Ok, Result

DEFAULT_CONFIG_FILE = "workflow_fsm.yaml"

# Ceiling on build retries per session
MAX_RETRIES = 3


class UpliftMode(Enum):
    """How uplift helpers treat a missing understanding confirmation."""

    # Prefer forward progress: adopt the prompt as the understanding
    LENIENT = "lenient"
    # Block until the understanding is explicitly confirmed
    STRICT = "strict"


@dataclass
class LoggingConfig:
    """Logging settings."""

    level: str = "info"
    format: str = "json"


@dataclass
class GenerationConfig:
    """
    Complete state-machine configuration.

    Attributes:
        max_retries: Build retries allowed before retry_building reports exhaustion
        uplift_mode: Lenient or strict handling of unconfirmed understanding
        debug_mode: Emit per-transition debug events
        credential_aliases: Extra canonical-name -> aliases credential entries
        logging: Logging settings
    """

    max_retries: int = MAX_RETRIES
    uplift_mode: UpliftMode = UpliftMode.LENIENT
    debug_mode: bool = False
    credential_aliases: dict[str, list[str]] = field(default_factory=dict)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def from_yaml(cls, path: Path) -> Result["GenerationConfig", ConfigError]:
        """
        Load configuration from a YAML file.

        Args:
            path: Path to YAML configuration file

        Returns:
            Result with loaded config or error
        """
        path = Path(path)

        if not path.exists():
            return Err(ConfigError(
                field="path",
                message=f"Configuration file not found: {path}",
            ))

        try:
            with open(path) as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            return Err(ConfigError(
                field="yaml",
                message=f"Failed to parse YAML: {e}",
            ))
        except OSError as e:
            return Err(ConfigError(
                field="file",
                message=f"Failed to read config file: {e}",
            ))

        if not isinstance(data, dict):
            return Err(ConfigError(
                field="yaml",
                message="Top-level YAML value must be a mapping",
            ))

        return cls.from_dict(data)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Result["GenerationConfig", ConfigError]:
        """
        Create configuration from a dictionary.

        Args:
            data: Configuration dictionary

        Returns:
            Result with validated config or error
        """
        raw_mode = str(data.get("uplift_mode", UpliftMode.LENIENT.value)).lower()
        try:
            uplift_mode = UpliftMode(raw_mode)
        except ValueError:
            return Err(ConfigError(
                field="uplift_mode",
                message=f"Must be 'lenient' or 'strict', got {raw_mode!r}",
            ))

        aliases = data.get("credential_aliases") or {}
        if not isinstance(aliases, dict):
            return Err(ConfigError(
                field="credential_aliases",
                message="Must be a mapping of credential name to alias list",
            ))

        try:
            max_retries = int(data.get("max_retries", MAX_RETRIES))
        except (TypeError, ValueError):
            return Err(ConfigError(
                field="max_retries",
                message=f"Must be an integer, got {data.get('max_retries')!r}",
            ))

        logging_data = data.get("logging") or {}
        config = cls(
            max_retries=max_retries,
            uplift_mode=uplift_mode,
            debug_mode=bool(data.get("debug_mode", False)),
            credential_aliases={
                str(name): [str(a) for a in (names or [])]
                for name, names in aliases.items()
            },
            logging=LoggingConfig(
                level=logging_data.get("level", "info"),
                format=logging_data.get("format", "json"),
            ),
        )

        validation = config.validate()
        if validation.is_err():
            return Err(validation.unwrap_err())
        return Ok(config)

    def validate(self) -> Result[None, ConfigError]:
        """
        Validate configuration values.

        Returns:
            Result indicating success or the first validation error
        """
        if not 0 <= self.max_retries <= MAX_RETRIES:
            return Err(ConfigError(
                field="max_retries",
                message=f"Must be between 0 and {MAX_RETRIES}, got {self.max_retries}",
            ))

        if self.logging.level.lower() not in LOG_LEVELS:
            return Err(ConfigError(
                field="logging.level",
                message=f"Unknown log level {self.logging.level!r}",
            ))

        if self.logging.format not in ("json", "text"):
            return Err(ConfigError(
                field="logging.format",
                message=f"Must be 'json' or 'text', got {self.logging.format!r}",
            ))

        return Ok(None)

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "max_retries": self.max_retries,
            "uplift_mode": self.uplift_mode.value,
            "debug_mode": self.debug_mode,
            "credential_aliases": dict(self.credential_aliases),
            "logging": {"level": self.logging.level, "format": self.logging.format},
        }


def load_config(path: Optional[Path] = None) -> Result[GenerationConfig, ConfigError]:
    """
    Load configuration from ``path`` or the default file in the working directory.

    A missing default file yields the built-in defaults; a missing explicit
    path is an error.
    """
    if path is None:
        default_path = Path(DEFAULT_CONFIG_FILE)
        if not default_path.exists():
            return Ok(GenerationConfig())
        path = default_path

    return GenerationConfig.from_yaml(path)
