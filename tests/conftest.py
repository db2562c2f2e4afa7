# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Pytest fixtures for redir tests.

Logging and config are pointed at a scratch directory before redir is
imported so tests never touch the user's ~/.config or ~/.local.
"""

import os
import socket
import tempfile
import threading
import time
from pathlib import Path

import pytest

_SCRATCH = tempfile.mkdtemp(prefix="redir-tests-")
os.environ["REDIR_LOG_FILE"] = os.path.join(_SCRATCH, "redir.log")
os.environ["REDIR_CONFIG"] = os.path.join(_SCRATCH, "config.yml")

from redir.config import BridgeConfig, reset_config  # noqa: E402


@pytest.fixture(autouse=True)
def _fresh_config():
    """Drop the cached config between tests."""
    reset_config()
    yield
    reset_config()


@pytest.fixture
def bridge_config():
    """Fast-polling bridge settings for tests."""
    return BridgeConfig(buffer_size=1024, poll_interval=0.05, drain_timeout=2.0)


@pytest.fixture
def socket_dir():
    """Short-lived directory with a short path (unix socket paths are limited to ~100 chars)."""
    with tempfile.TemporaryDirectory(prefix="redir-") as tmpdir:
        yield Path(tmpdir)


def recv_until_closed(sock: socket.socket, timeout: float = 5.0) -> bytes:
    """Read from sock until the peer closes it."""
    sock.settimeout(timeout)
    data = b""
    while True:
        chunk = sock.recv(4096)
        if not chunk:
            return data
        data += chunk


def recv_exactly(sock: socket.socket, size: int, timeout: float = 5.0) -> bytes:
    """Read size bytes from sock (or fewer if it closes first)."""
    sock.settimeout(timeout)
    data = b""
    while len(data) < size:
        chunk = sock.recv(size - len(data))
        if not chunk:
            break
        data += chunk
    return data


def read_fd_exactly(fd: int, size: int, timeout: float = 5.0) -> bytes:
    """Read size bytes from a pipe, giving up after timeout."""
    import select

    deadline = time.monotonic() + timeout
    data = b""
    while len(data) < size:
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            break
        ready, _, _ = select.select([fd], [], [], remaining)
        if not ready:
            break
        chunk = os.read(fd, size - len(data))
        if not chunk:
            break
        data += chunk
    return data


def wait_until(predicate, timeout: float = 5.0, interval: float = 0.02) -> bool:
    """Poll predicate until it is true or timeout elapses."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


def run_in_thread(target, *args):
    """Run target in a daemon thread, recording its result or exception."""
    outcome = {}

    def runner():
        try:
            outcome["result"] = target(*args)
        except BaseException as e:  # noqa: BLE001 - surfaced to the test
            outcome["error"] = e

    thread = threading.Thread(target=runner, daemon=True)
    thread.start()
    return thread, outcome
