"""Tracker configuration loaded from .mission-tracker/config.yaml."""

import os
from pathlib import Path
from typing import List, Mapping, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError as PydanticValidationError, field_validator

from .constants import (
    DEFAULT_FINGERPRINT_EXTENSIONS,
    DEFAULT_FINGERPRINT_WORKERS,
    DEFAULT_PROBE_TIMEOUT,
    DEFAULT_VCS_BINARY,
    ENV_PROBE_TIMEOUT,
    ENV_STORE_DIR,
    ENV_VCS_BINARY,
    MISSION_TRACKER_DIR,
    RECORDS_DIR,
)
from .errors import ConfigError
from .utils import atomic_write_text


class TrackerConfig(BaseModel):
    """Tracker configuration."""

    probe_timeout_seconds: float = DEFAULT_PROBE_TIMEOUT
    vcs_binary: str = DEFAULT_VCS_BINARY
    fingerprint_extensions: List[str] = Field(
        default_factory=lambda: list(DEFAULT_FINGERPRINT_EXTENSIONS)
    )
    fingerprint_ignore: List[str] = Field(default_factory=list)
    fingerprint_workers: int = DEFAULT_FINGERPRINT_WORKERS
    store_dir: str = f"{MISSION_TRACKER_DIR}/{RECORDS_DIR}"

    @field_validator("probe_timeout_seconds")
    @classmethod
    def _positive_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("probe_timeout_seconds must be positive")
        return v

    @field_validator("fingerprint_workers")
    @classmethod
    def _positive_workers(cls, v: int) -> int:
        if v < 1:
            raise ValueError("fingerprint_workers must be at least 1")
        return v

    def store_path(self, root: Path) -> Path:
        """Record store directory, resolved against the project root."""
        path = Path(self.store_dir).expanduser()
        return path if path.is_absolute() else root / path


def apply_env_overrides(config: TrackerConfig, environ: Optional[Mapping[str, str]] = None) -> TrackerConfig:
    """Return a copy of ``config`` with environment overrides applied."""
    environ = os.environ if environ is None else environ
    updates = {}

    if environ.get(ENV_PROBE_TIMEOUT):
        try:
            updates["probe_timeout_seconds"] = float(environ[ENV_PROBE_TIMEOUT])
        except ValueError:
            raise ConfigError(
                f"{ENV_PROBE_TIMEOUT} must be a number, got '{environ[ENV_PROBE_TIMEOUT]}'"
            )
    if environ.get(ENV_VCS_BINARY):
        updates["vcs_binary"] = environ[ENV_VCS_BINARY]
    if environ.get(ENV_STORE_DIR):
        updates["store_dir"] = environ[ENV_STORE_DIR]

    if not updates:
        return config
    try:
        return TrackerConfig(**{**config.model_dump(), **updates})
    except PydanticValidationError as e:
        raise ConfigError(f"Invalid environment override: {e}") from e


def load_config(config_path: Path, environ: Optional[Mapping[str, str]] = None) -> TrackerConfig:
    """Load configuration, falling back to defaults when the file is absent.

    Raises:
        ConfigError: If the file cannot be read or does not validate
    """
    data = {}
    if config_path.exists():
        try:
            with config_path.open() as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(f"Cannot read configuration at {config_path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigError(f"Configuration at {config_path} must be a mapping")

    try:
        config = TrackerConfig(**data)
    except PydanticValidationError as e:
        raise ConfigError(f"Invalid configuration at {config_path}: {e}") from e

    return apply_env_overrides(config, environ)


def save_config(config: TrackerConfig, config_path: Path) -> None:
    """Save configuration atomically."""
    config_text = yaml.safe_dump(config.model_dump(), default_flow_style=False, sort_keys=False)
    atomic_write_text(config_path, config_text)
