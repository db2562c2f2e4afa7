# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Centralized configuration for redir.

Settings are read once from ~/.config/redir/config.yml (or $REDIR_CONFIG)
and handed to the bridge and supervisors as an immutable BridgeConfig value.
"""

import logging
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Optional

import yaml
from pydantic import ValidationError

from redir.models.config import RedirConfigModel
from redir.paths import HostPaths

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BridgeConfig:
    """Immutable settings passed into the bridge engine and supervisors."""

    buffer_size: int = 1024
    encoding: str = "latin-1"
    poll_interval: float = 0.5
    drain_timeout: float = 2.0

    def with_buffer_size(self, buffer_size: Optional[int]) -> "BridgeConfig":
        """Return a copy with buffer_size overridden (None keeps the current value)."""
        if buffer_size is None:
            return self
        if buffer_size <= 0:
            raise ValueError(f"Buffer size must be positive: {buffer_size}")
        return replace(self, buffer_size=buffer_size)


class RedirConfig:
    """Manages user configuration from ~/.config/redir/config.yml."""

    def __init__(self, config_path: Optional[Path] = None):
        self.config_path = config_path or HostPaths.config_file()
        self._model = self._load()

    def _load(self) -> RedirConfigModel:
        """Load configuration from file, falling back to defaults."""
        if not self.config_path.exists():
            return RedirConfigModel()

        try:
            with open(self.config_path) as f:
                raw_config = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            logger.warning(f"Failed to load config from {self.config_path}: {e}")
            return RedirConfigModel()

        if not isinstance(raw_config, dict):
            logger.warning(f"Ignoring config {self.config_path}: expected a mapping")
            return RedirConfigModel()

        try:
            return RedirConfigModel.model_validate(raw_config)
        except ValidationError as e:
            logger.warning(f"Config validation errors: {e}")
            return RedirConfigModel()

    @property
    def log_level(self) -> Optional[str]:
        return self._model.log_level

    def bridge_config(self, buffer_size: Optional[int] = None) -> BridgeConfig:
        """Build the BridgeConfig for one invocation."""
        config = BridgeConfig(
            buffer_size=self._model.buffer_size,
            encoding=self._model.encoding,
            poll_interval=self._model.poll_interval,
            drain_timeout=self._model.drain_timeout,
        )
        return config.with_buffer_size(buffer_size)


_config: Optional[RedirConfig] = None


def get_config() -> RedirConfig:
    """Get the cached configuration instance."""
    global _config
    if _config is None:
        _config = RedirConfig()
    return _config


def reset_config() -> None:
    """Drop the cached configuration (used by tests and after config edits)."""
    global _config
    _config = None
