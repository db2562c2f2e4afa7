# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Where redir keeps its files on the local machine.

Usage:
    from redir.paths import HostPaths

    HostPaths.config_file()   # ~/.config/redir/config.yml or $REDIR_CONFIG
    HostPaths.log_file()      # ~/.local/share/redir/logs/redir.log

Unix socket paths are not managed here; they come from the target string.
"""

import os
from pathlib import Path

APP_NAME = "redir"


def _xdg_dir(env_var: str, *fallback: str) -> Path:
    base = os.getenv(env_var)
    root = Path(base) if base else Path.home().joinpath(*fallback)
    return root / APP_NAME


class HostPaths:
    """XDG base-directory locations for config and logs."""

    @staticmethod
    def config_dir() -> Path:
        return _xdg_dir("XDG_CONFIG_HOME", ".config")

    @staticmethod
    def config_file() -> Path:
        override = os.getenv("REDIR_CONFIG")
        return Path(override) if override else HostPaths.config_dir() / "config.yml"

    @staticmethod
    def data_dir() -> Path:
        return _xdg_dir("XDG_DATA_HOME", ".local", "share")

    @staticmethod
    def log_file() -> Path:
        return HostPaths.data_dir() / "logs" / "redir.log"
