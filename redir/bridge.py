# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Bidirectional byte bridging between a socket and stdio streams.

A BridgeSession runs one thread per direction:

    host role:    socket -> process stdin
                  process stdout -> socket
                  process stderr -> socket
    attach role:  console input -> socket
                  socket -> console output

Socket reads move chunks of up to buffer_size bytes; stream reads move one
line at a time. Everything is written verbatim and flushed immediately.

Loops end on their own: end of stream or a failed read stops only the loop
that saw it. A socket loop whose destination closed keeps reading and drops
the data, so it still notices the peer hanging up. A line read after the
socket was lost is pushed back onto its reader.

The socket's usability is a shared flag. A loop that sees the peer hang up
(or a send fail) raises it, and every other loop notices within one poll
interval because all blocking reads wait on select() with poll_interval as
timeout. close() raises the same flag from outside, which is how supervisors
tear a session down.
"""

import select
import socket
import sys
import threading
import time
from dataclasses import dataclass
from typing import Callable, List, Optional, Union

from redir.config import BridgeConfig
from redir.errors import StreamFailure
from redir.process import LineReader, ProcessHandle, StreamWriter
from redir.utils.logging import get_logger

logger = get_logger(__name__)

# Errors that mean "this endpoint is gone"; ValueError covers a closed file
STREAM_ERRORS = (OSError, ValueError)


@dataclass
class ProcessStreams:
    """Borrowed stdio handles of a launched process."""

    stdin: StreamWriter
    stdout: LineReader
    stderr: LineReader

    @classmethod
    def from_process(cls, process: ProcessHandle) -> "ProcessStreams":
        return cls(stdin=process.stdin, stdout=process.stdout, stderr=process.stderr)


@dataclass
class ConsoleStreams:
    """Local console input and output."""

    input: LineReader
    output: StreamWriter

    @classmethod
    def from_stdio(cls) -> "ConsoleStreams":
        return cls(input=LineReader(sys.stdin.buffer), output=StreamWriter(sys.stdout.buffer))


Peer = Union[ProcessStreams, ConsoleStreams]


class CopyLoop:
    """One direction of a bridge, running on its own thread."""

    def __init__(self, name: str, target: Callable[[], None], drains_source: bool):
        self.name = name
        self.drains_source = drains_source
        self.thread = threading.Thread(target=target, name=name, daemon=True)

    @property
    def alive(self) -> bool:
        return self.thread.is_alive()


class BridgeSession:
    """The set of copy loops sharing one socket.

    The session owns the socket from start() until close() and closes it
    exactly once.
    """

    def __init__(self, sock: socket.socket, config: BridgeConfig, name: str = "bridge"):
        self.sock = sock
        self.config = config
        self.name = name
        self.loops: List[CopyLoop] = []
        self._socket_lost = threading.Event()
        self._close_lock = threading.Lock()
        self._closed = False
        self._started = False
        self._datagram = sock.type == socket.SOCK_DGRAM

    # -- liveness -----------------------------------------------------------

    @property
    def is_open(self) -> bool:
        """True while the socket is still considered usable."""
        return not self._socket_lost.is_set()

    @property
    def finished(self) -> bool:
        """True once every loop has terminated."""
        return self._started and not any(loop.alive for loop in self.loops)

    def mark_socket_lost(self, reason: str) -> None:
        """Flag the socket as unusable. Safe to call from any loop, repeatedly."""
        if not self._socket_lost.is_set():
            logger.debug(f"{self.name}: socket unusable ({reason})")
        self._socket_lost.set()

    def wait_socket_lost(self, timeout: Optional[float] = None) -> bool:
        """Block until the socket becomes unusable. Returns False on timeout."""
        return self._socket_lost.wait(timeout)

    # -- loop bodies ----------------------------------------------------------

    def _recv(self) -> Optional[bytes]:
        """Read one chunk from the socket.

        Returns None if nothing arrived within poll_interval. Raises
        StreamFailure when the peer has closed or the socket failed.
        """
        try:
            ready, _, _ = select.select([self.sock], [], [], self.config.poll_interval)
            if not ready:
                return None
            data = self.sock.recv(self.config.buffer_size)
        except STREAM_ERRORS as e:
            raise StreamFailure(f"socket read failed: {e}") from e
        if not data and not self._datagram:
            raise StreamFailure("peer closed the connection")
        return data

    def _send(self, data: bytes) -> None:
        try:
            self.sock.sendall(data)
        except STREAM_ERRORS as e:
            raise StreamFailure(f"socket write failed: {e}") from e

    def _socket_to_stream(self, label: str, destination: StreamWriter) -> Callable[[], None]:
        def run() -> None:
            writable = True
            while self.is_open:
                try:
                    data = self._recv()
                except StreamFailure as e:
                    self.mark_socket_lost(str(e))
                    break
                if not data or not writable:
                    # Once the destination is gone, keep reading so a hang-up is still seen
                    continue
                logger.trace(label, data, self.config.encoding)
                try:
                    destination.write(data)
                except STREAM_ERRORS as e:
                    logger.debug(f"{self.name}: [{label}] destination closed, dropping input: {e}")
                    writable = False

        return run

    def _stream_to_socket(self, label: str, source: LineReader) -> Callable[[], None]:
        def run() -> None:
            while self.is_open:
                try:
                    line = source.readline(timeout=self.config.poll_interval)
                except STREAM_ERRORS as e:
                    logger.debug(f"{self.name}: [{label}] source read failed: {e}")
                    break
                if line is None:
                    continue
                if not line:
                    logger.debug(f"{self.name}: [{label}] source exhausted")
                    break
                if not self.is_open:
                    # The readline outlived the socket; leave the line for the next session
                    source.unread(line)
                    break
                logger.trace(label, line, self.config.encoding)
                try:
                    self._send(line)
                except StreamFailure as e:
                    # Keep the line for whoever reads this source next
                    source.unread(line)
                    self.mark_socket_lost(str(e))
                    break

        return run

    def _add_loop(self, direction: str, target: Callable[[], None], drains: bool):
        self.loops.append(CopyLoop(f"{self.name}-{direction}", target, drains))

    # -- lifecycle ------------------------------------------------------------

    def start(self, peer: Peer) -> "BridgeSession":
        """Start one copy loop per direction for the peer's role."""
        if self._started:
            raise RuntimeError(f"{self.name} already started")

        if isinstance(peer, ProcessStreams):
            self._add_loop("stdin", self._socket_to_stream("Input", peer.stdin), False)
            self._add_loop("stdout", self._stream_to_socket("Output", peer.stdout), True)
            self._add_loop("stderr", self._stream_to_socket("Error", peer.stderr), True)
        else:
            self._add_loop("input", self._stream_to_socket("Input", peer.input), False)
            self._add_loop("output", self._socket_to_stream("Output", peer.output), False)

        self._started = True
        for loop in self.loops:
            loop.thread.start()
        logger.debug(f"{self.name}: started {len(self.loops)} loops")
        return self

    def join(self, timeout: Optional[float] = None, drains_only: bool = False) -> bool:
        """Wait for loops to finish. Returns True if all waited-for loops ended."""
        deadline = None if timeout is None else time.monotonic() + timeout
        loops = [loop for loop in self.loops if loop.drains_source or not drains_only]
        for loop in loops:
            remaining = None
            if deadline is not None:
                remaining = max(0.0, deadline - time.monotonic())
            loop.thread.join(remaining)
        return not any(loop.alive for loop in loops)

    def close(self, timeout: Optional[float] = None) -> None:
        """Stop all loops and close the socket (once)."""
        self.mark_socket_lost("session closed")
        if timeout is None:
            timeout = self.config.poll_interval * 4
        if not self.join(timeout):
            stuck = ", ".join(loop.name for loop in self.loops if loop.alive)
            logger.warning(f"{self.name}: loops still blocked after close: {stuck}")

        with self._close_lock:
            if self._closed:
                return
            self._closed = True
        try:
            self.sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            # Already disconnected, or a datagram socket
            pass
        self.sock.close()
        logger.debug(f"{self.name}: socket closed")


def bridge(
    sock: socket.socket, peer: Peer, config: BridgeConfig, name: str = "bridge"
) -> BridgeSession:
    """Bridge sock and peer until the socket goes away, then close it.

    Blocks until the session is finished.
    """
    session = BridgeSession(sock, config, name=name).start(peer)
    session.wait_socket_lost()
    session.close()
    return session
