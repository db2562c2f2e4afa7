# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Tests for detached host processes."""

import subprocess
import sys
from unittest.mock import MagicMock, patch

import pytest

from redir.daemon import daemon_argv, spawn_detached
from redir.endpoint import resolve
from redir.errors import SpawnFailure


class TestDaemonArgv:
    def test_reexecs_daemon_command(self):
        argv = daemon_argv(resolve("localhost:4000"), "echo hi")
        assert argv == [
            sys.executable, "-m", "redir.cli", "daemon", "--", "tcp://localhost:4000", "echo hi"
        ]

    def test_buffer_size_is_forwarded(self):
        argv = daemon_argv(resolve("udp://127.0.0.1:53"), "cat", buffer_size=512)
        assert argv[4:] == ["--buffer", "512", "--", "udp://127.0.0.1:53", "cat"]


class TestSpawnDetached:
    @patch("redir.daemon.subprocess.Popen")
    def test_detaches_from_terminal(self, mock_popen):
        mock_popen.return_value = MagicMock(pid=4242)

        pid = spawn_detached(resolve("unix:/tmp/app.sock"), "cat", cwd="/tmp")

        assert pid == 4242
        kwargs = mock_popen.call_args.kwargs
        assert kwargs["start_new_session"] is True
        assert kwargs["stdin"] is subprocess.DEVNULL
        assert kwargs["stdout"] is subprocess.DEVNULL
        assert kwargs["stderr"] is subprocess.DEVNULL
        assert kwargs["cwd"] == "/tmp"

    @patch("redir.daemon.subprocess.Popen", side_effect=OSError("no fork"))
    def test_spawn_error(self, mock_popen):
        with pytest.raises(SpawnFailure):
            spawn_detached(resolve("localhost:4000"), "cat")
