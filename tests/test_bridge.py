# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Tests for the bridge engine using socket pairs and pipes."""

import io
import os
import socket
import time

import pytest

from redir.bridge import BridgeSession, ConsoleStreams, ProcessStreams, bridge
from redir.config import BridgeConfig
from redir.process import LineReader, StreamWriter

from conftest import read_fd_exactly, recv_exactly, run_in_thread, wait_until


class FakeProcess:
    """Three pipes standing in for a child process's stdio."""

    def __init__(self):
        self.stdin_read, stdin_write = os.pipe()
        stdout_read, self.stdout_write = os.pipe()
        stderr_read, self.stderr_write = os.pipe()
        self.streams = ProcessStreams(
            stdin=StreamWriter(os.fdopen(stdin_write, "wb", buffering=0)),
            stdout=LineReader(os.fdopen(stdout_read, "rb", buffering=0)),
            stderr=LineReader(os.fdopen(stderr_read, "rb", buffering=0)),
        )

    def close_end(self, name):
        """Close one of the pipe ends held by the test side exactly once."""
        fd = getattr(self, name)
        if fd is not None:
            os.close(fd)
            setattr(self, name, None)

    def close(self):
        self.close_end("stdin_read")
        self.close_end("stdout_write")
        self.close_end("stderr_write")
        self.streams.stdin.close()
        self.streams.stdout.close()
        self.streams.stderr.close()


@pytest.fixture
def fake_process():
    process = FakeProcess()
    yield process
    process.close()


@pytest.fixture
def socket_pair():
    remote, local = socket.socketpair()
    yield remote, local
    remote.close()
    local.close()


@pytest.fixture
def tcp_pair():
    """Connected TCP sockets; a send to a peer that already hung up still succeeds once"""
    server = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    server.bind(("127.0.0.1", 0))
    server.listen(1)
    remote = socket.create_connection(server.getsockname(), timeout=5)
    local, _ = server.accept()
    server.close()
    yield remote, local
    remote.close()
    local.close()


class TestHostRole:
    """socket <-> process stdin/stdout/stderr"""

    def test_starts_three_loops(self, socket_pair, fake_process, bridge_config):
        _, local = socket_pair
        session = BridgeSession(local, bridge_config).start(fake_process.streams)
        try:
            assert len(session.loops) == 3
            assert all(loop.alive for loop in session.loops)
        finally:
            session.close()

    def test_socket_to_stdin_is_verbatim(self, socket_pair, fake_process, bridge_config):
        remote, local = socket_pair
        session = BridgeSession(local, bridge_config).start(fake_process.streams)
        try:
            payload = b"no newline \x00\xff and\r\nmore"
            remote.sendall(payload)
            assert read_fd_exactly(fake_process.stdin_read, len(payload)) == payload
        finally:
            session.close()

    def test_stdout_and_stderr_reach_socket(self, socket_pair, fake_process, bridge_config):
        remote, local = socket_pair
        session = BridgeSession(local, bridge_config).start(fake_process.streams)
        try:
            os.write(fake_process.stdout_write, b"out\n")
            assert recv_exactly(remote, 4) == b"out\n"
            os.write(fake_process.stderr_write, b"err\n")
            assert recv_exactly(remote, 4) == b"err\n"
        finally:
            session.close()

    def test_small_buffer_keeps_bytes_in_order(self, socket_pair, fake_process):
        remote, local = socket_pair
        config = BridgeConfig(buffer_size=3, poll_interval=0.05)
        session = BridgeSession(local, config).start(fake_process.streams)
        try:
            payload = b"abcdefghijklmnop"
            remote.sendall(payload)
            assert read_fd_exactly(fake_process.stdin_read, len(payload)) == payload
        finally:
            session.close()

    def test_peer_close_marks_socket_lost(self, socket_pair, fake_process, bridge_config):
        remote, local = socket_pair
        session = BridgeSession(local, bridge_config).start(fake_process.streams)
        remote.close()

        assert session.wait_socket_lost(5)
        assert not session.is_open
        # Sibling loops notice within a poll interval
        assert session.join(5)
        assert session.finished
        session.close()

    def test_stdout_eof_ends_only_its_loop(self, socket_pair, fake_process, bridge_config):
        remote, local = socket_pair
        session = BridgeSession(local, bridge_config).start(fake_process.streams)
        try:
            fake_process.close_end("stdout_write")
            stdout_loop = next(loop for loop in session.loops if loop.name.endswith("stdout"))
            assert wait_until(lambda: not stdout_loop.alive)

            assert session.is_open
            remote.sendall(b"still here\n")
            assert read_fd_exactly(fake_process.stdin_read, 11) == b"still here\n"
        finally:
            session.close()

    def test_unsent_output_stays_with_the_process(self, socket_pair, fake_process, bridge_config):
        """Output written after a session ends is left for the next session"""
        remote, local = socket_pair
        session = BridgeSession(local, bridge_config).start(fake_process.streams)
        session.close()

        os.write(fake_process.stdout_write, b"later\n")
        assert fake_process.streams.stdout.readline(timeout=1) == b"later\n"

    def test_line_read_after_hang_up_is_kept(self, tcp_pair, fake_process):
        """Output arriving while the socket is being lost waits for the next session"""
        remote, local = tcp_pair
        config = BridgeConfig(poll_interval=1.0)
        session = BridgeSession(local, config).start(fake_process.streams)
        remote.close()
        assert session.wait_socket_lost(5)

        os.write(fake_process.stdout_write, b"late\n")
        session.close()

        assert fake_process.streams.stdout.readline(timeout=0.2) == b"late\n"

    def test_closed_stdin_still_notices_hang_up(self, socket_pair, fake_process, bridge_config):
        remote, local = socket_pair
        session = BridgeSession(local, bridge_config).start(fake_process.streams)
        try:
            fake_process.close_end("stdin_read")
            remote.sendall(b"nobody reads this\n")
            stdin_loop = next(loop for loop in session.loops if loop.name.endswith("stdin"))
            time.sleep(0.2)
            assert stdin_loop.alive
            assert session.is_open

            remote.close()
            assert session.wait_socket_lost(5)
            assert wait_until(lambda: not stdin_loop.alive)
        finally:
            session.close()

    def test_drain_join_waits_for_output_loops(self, socket_pair, fake_process, bridge_config):
        remote, local = socket_pair
        session = BridgeSession(local, bridge_config).start(fake_process.streams)
        try:
            os.write(fake_process.stdout_write, b"last words\n")
            fake_process.close_end("stdout_write")
            fake_process.close_end("stderr_write")

            assert session.join(5, drains_only=True)
            assert recv_exactly(remote, 11) == b"last words\n"
            # The socket -> stdin loop is still running
            assert session.is_open
        finally:
            session.close()


class TestAttachRole:
    """console <-> socket"""

    @pytest.fixture
    def console(self):
        read_fd, write_fd = os.pipe()
        keyboard = os.fdopen(write_fd, "wb", buffering=0)
        output = io.BytesIO()
        streams = ConsoleStreams(
            input=LineReader(os.fdopen(read_fd, "rb", buffering=0)),
            output=StreamWriter(output),
        )
        yield streams, keyboard, output
        streams.input.close()
        keyboard.close()

    def test_starts_two_loops(self, socket_pair, console, bridge_config):
        _, local = socket_pair
        streams, _, _ = console
        session = BridgeSession(local, bridge_config).start(streams)
        try:
            assert len(session.loops) == 2
        finally:
            session.close()

    def test_console_input_reaches_socket_unchanged(self, socket_pair, console, bridge_config):
        remote, local = socket_pair
        streams, keyboard, _ = console
        session = BridgeSession(local, bridge_config).start(streams)
        try:
            keyboard.write(b"typed line\n")
            assert recv_exactly(remote, 11) == b"typed line\n"
        finally:
            session.close()

    def test_bridge_returns_when_host_closes(self, socket_pair, console, bridge_config):
        remote, local = socket_pair
        streams, _, output = console

        thread, outcome = run_in_thread(bridge, local, streams, bridge_config)
        remote.sendall(b"hello\n")
        assert wait_until(lambda: output.getvalue() == b"hello\n")
        remote.close()

        thread.join(5)
        assert not thread.is_alive()
        assert "error" not in outcome
        session = outcome["result"]
        assert session.finished
        assert local.fileno() == -1

    def test_console_eof_keeps_receiving(self, socket_pair, console, bridge_config):
        remote, local = socket_pair
        streams, keyboard, output = console
        session = BridgeSession(local, bridge_config).start(streams)
        try:
            keyboard.close()
            input_loop = session.loops[0]
            assert wait_until(lambda: not input_loop.alive)

            remote.sendall(b"after eof\n")
            assert wait_until(lambda: output.getvalue() == b"after eof\n")
            assert session.is_open
        finally:
            session.close()


class TestDatagram:
    """Datagram sockets have no end-of-stream"""

    def test_empty_datagram_does_not_end_session(self, fake_process, bridge_config):
        remote, local = socket.socketpair(socket.AF_UNIX, socket.SOCK_DGRAM)
        session = BridgeSession(local, bridge_config).start(fake_process.streams)
        try:
            remote.send(b"")
            remote.send(b"ping\n")
            assert read_fd_exactly(fake_process.stdin_read, 5) == b"ping\n"
            assert session.is_open
        finally:
            session.close()
            remote.close()


class TestClose:
    """Session teardown"""

    def test_close_is_idempotent(self, socket_pair, fake_process, bridge_config):
        remote, local = socket_pair
        session = BridgeSession(local, bridge_config).start(fake_process.streams)
        session.close()
        session.close()

        assert local.fileno() == -1
        assert session.finished
        # The peer sees the connection go away
        remote.settimeout(5)
        assert remote.recv(16) == b""

    def test_cannot_start_twice(self, socket_pair, fake_process, bridge_config):
        _, local = socket_pair
        session = BridgeSession(local, bridge_config).start(fake_process.streams)
        try:
            with pytest.raises(RuntimeError):
                session.start(fake_process.streams)
        finally:
            session.close()
