# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Detached host processes.

`redir daemon --spawn` re-executes itself without --spawn in a new session
with stdio on /dev/null, then returns. The child logs to the log file only.
"""

import os
import subprocess
import sys
from typing import List, Optional

from redir.endpoint import TargetDescriptor
from redir.errors import SpawnFailure
from redir.utils.logging import get_logger

logger = get_logger(__name__)


def daemon_argv(
    target: TargetDescriptor, command: str, buffer_size: Optional[int] = None
) -> List[str]:
    """Command line that runs the host in the foreground of a new process."""
    argv = [sys.executable, "-m", "redir.cli", "daemon"]
    if buffer_size is not None:
        argv += ["--buffer", str(buffer_size)]
    # Positionals last, so a command starting with "-" is not read as an option
    return argv + ["--", str(target), command]


def spawn_detached(
    target: TargetDescriptor,
    command: str,
    buffer_size: Optional[int] = None,
    cwd: Optional[str] = None,
) -> int:
    """Start a detached host process and return its pid."""
    argv = daemon_argv(target, command, buffer_size)
    try:
        proc = subprocess.Popen(
            argv,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            cwd=cwd or os.getcwd(),
            start_new_session=True,
            close_fds=True,
        )
    except OSError as e:
        raise SpawnFailure(f"Failed to start daemon process: {e}") from e

    logger.info("Daemon process starting")
    logger.debug(f"Daemon pid {proc.pid}: {' '.join(argv)}")
    return proc.pid
