"""
Configuration for myq-status
============================

Settings come from three layers, later ones winning: an optional YAML file,
``MYQ_*`` environment variables, then command-line flags (applied by the
CLI through :meth:`StatusConfig.merged`).
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Annotated, Any, Dict, Optional, Union

import yaml
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

DEFAULT_CONFIG_PATH = "myq.yaml"

# environment variable -> config field
ENV_OVERRIDES = {
    "MYQ_INTERVAL": "interval",
    "MYQ_HEADER": "header_repeat",
    "MYQ_LOG_LEVEL": "log_level",
    "MYQ_VIEWS_DIR": "views_dir",
}

LOG_LEVELS = {"TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL"}


class StatusConfig(BaseModel):
    """Validated runtime settings."""

    model_config = ConfigDict(extra="forbid")

    interval: Annotated[
        float, Field(ge=1, description="Seconds between displayed samples")
    ] = 1.0
    header_repeat: Annotated[
        int, Field(ge=0, description="Lines between headers, 0 for terminal height")
    ] = 0
    truncate_width: bool = False
    queue_size: Annotated[int, Field(ge=1, description="Producer queue capacity")] = 1
    log_level: str = "WARNING"
    views_dir: Optional[Path] = None

    @field_validator("log_level")
    @classmethod
    def _known_level(cls, value: str) -> str:
        level = value.upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"log_level must be one of: {', '.join(sorted(LOG_LEVELS))}")
        return level

    def merged(self, **overrides: Any) -> "StatusConfig":
        """Copy with the non-``None`` *overrides* applied and validated."""
        values = self.model_dump()
        values.update({k: v for k, v in overrides.items() if v is not None})
        return build_config(values)

    def interval_is_whole(self) -> bool:
        return float(self.interval).is_integer()


def build_config(values: Dict[str, Any]) -> StatusConfig:
    """Validate *values* into a StatusConfig.

    Raises
    ------
    ValueError
        With every validation problem listed as ``field: message``.
    """
    try:
        return StatusConfig(**values)
    except ValidationError as e:
        error_details = "; ".join(
            f"{'.'.join(map(str, err['loc']))}: {err['msg']}" for err in e.errors()
        )
        raise ValueError(f"Configuration validation failed: {error_details}") from e


def config_path() -> Path:
    return Path(os.getenv("MYQ_CONFIG_PATH", DEFAULT_CONFIG_PATH))


def load_config(path: Optional[Union[str, Path]] = None) -> StatusConfig:
    """Load settings from *path* (or ``$MYQ_CONFIG_PATH``) plus environment.

    A missing file is not an error; defaults are used.

    Raises
    ------
    ValueError
        If the file is not a YAML mapping or a value is invalid.
    """
    path = Path(path) if path is not None else config_path()

    data: Dict[str, Any] = {}
    if path.exists():
        with open(path, "r") as f:
            loaded = yaml.safe_load(f) or {}
        if not isinstance(loaded, dict):
            raise ValueError(f"Configuration file {path} must contain a mapping")
        data.update(loaded)
        logger.debug("Configuration loaded from {}", path)

    for env, field in ENV_OVERRIDES.items():
        raw = os.getenv(env)
        if raw is not None and raw != "":
            data[field] = raw

    return build_config(data)


__all__ = [
    "DEFAULT_CONFIG_PATH",
    "ENV_OVERRIDES",
    "StatusConfig",
    "build_config",
    "config_path",
    "load_config",
]
