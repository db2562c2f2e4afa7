# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Host side: listen on an endpoint and expose a command's stdio to one client.

Lifecycle:

    IDLE -> BOUND -> LISTENING -> ACCEPTED -> BRIDGING -> DRAINING -> CLOSED
                                     ^                        |
                                     +------------------------+
                                  (client left, process still running)

The command is spawned when the first connection is accepted and keeps
running across connections. Only one client is bridged at a time (backlog 1).
Once the process exits the host drains its remaining output to the current
client, closes the connection and stops.

Datagram (udp://) endpoints have no accept(); the sender of the first
datagram becomes the peer and the socket is connected to it.
"""

import select
import socket
import threading
from enum import Enum
from typing import Callable, Optional, Tuple

from redir.bridge import BridgeSession, ProcessStreams
from redir.config import BridgeConfig
from redir.endpoint import TargetDescriptor
from redir.errors import BindFailure, RedirError
from redir.process import CommandDescriptor, ProcessHandle, launch
from redir.sockets import Role, create_socket, remove_stale_socket, socket_address
from redir.utils.logging import get_logger

logger = get_logger(__name__)

LISTEN_BACKLOG = 1


class HostState(str, Enum):
    IDLE = "idle"
    BOUND = "bound"
    LISTENING = "listening"
    ACCEPTED = "accepted"
    BRIDGING = "bridging"
    DRAINING = "draining"
    CLOSED = "closed"
    ERROR = "error"


class HostSupervisor:
    """Runs the listening lifecycle for one command."""

    def __init__(
        self,
        target: TargetDescriptor,
        command: CommandDescriptor,
        config: BridgeConfig,
        launcher: Callable[[CommandDescriptor], ProcessHandle] = launch,
    ):
        self.target = target
        self.command = command
        self.config = config
        self.launcher = launcher
        self.state = HostState.IDLE
        self.listener: Optional[socket.socket] = None
        self.address = None
        self.process: Optional[ProcessHandle] = None
        self.session: Optional[BridgeSession] = None
        self.connections = 0
        self._stop = threading.Event()
        self._closed = False
        self._state_changed = threading.Condition()

    # -- state ----------------------------------------------------------------

    def _transition(self, state: HostState) -> None:
        with self._state_changed:
            logger.debug(f"Host state: {self.state.value} -> {state.value}")
            self.state = state
            self._state_changed.notify_all()

    def wait_for_state(self, state: HostState, timeout: Optional[float] = None) -> bool:
        """Block until the supervisor reaches state. Returns False on timeout."""
        with self._state_changed:
            return self._state_changed.wait_for(lambda: self.state == state, timeout)

    def _fail(self, error: RedirError) -> RedirError:
        self._transition(HostState.ERROR)
        logger.error(str(error), console_output=False)
        return error

    def stop(self) -> None:
        """Ask run() to wind down. The process is terminated on the way out."""
        self._stop.set()

    def _process_exited(self) -> bool:
        return self.process is not None and self.process.has_exited()

    # -- setup ----------------------------------------------------------------

    def bind(self) -> None:
        """Create the listening socket and bind it to the target."""
        sock = create_socket(self.target, Role.LISTENER)
        address = socket_address(self.target, Role.LISTENER)

        if self.target.is_unix and remove_stale_socket(self.target.path):
            logger.debug(f"Removed stale socket {self.target.path}")

        try:
            sock.bind(address)
        except OSError as e:
            sock.close()
            error = BindFailure(
                f"Unable to bind socket {self.target}: {e}", hint="Is the address in use?"
            )
            raise self._fail(error) from e

        self.listener = sock
        self.address = sock.getsockname()
        self._transition(HostState.BOUND)

    def listen(self) -> None:
        """Start listening with a backlog of one (datagram sockets skip listen())."""
        if not self.target.is_datagram:
            try:
                self.listener.listen(LISTEN_BACKLOG)
            except OSError as e:
                self._release_listener()
                raise self._fail(BindFailure(f"Unable to listen on {self.target}: {e}")) from e
        self._transition(HostState.LISTENING)
        logger.info(f"Listening on {self.target}")

    def _rebind(self) -> None:
        # The previous datagram session consumed the bound socket
        self.bind()
        self.listen()

    # -- accept ---------------------------------------------------------------

    def accept(self) -> Optional[Tuple[socket.socket, object]]:
        """Wait for the next client.

        Polls every poll_interval so a process that exits while nobody is
        connected ends the host. Returns None in that case (or after stop()).
        """
        while not self._stop.is_set() and not self._process_exited():
            ready, _, _ = select.select([self.listener], [], [], self.config.poll_interval)
            if not ready:
                continue

            if self.target.is_datagram:
                try:
                    _, peer = self.listener.recvfrom(1, socket.MSG_PEEK)
                except ConnectionError as e:
                    logger.warning(f"Datagram receive failed: {e}")
                    continue
                conn = self.listener
                conn.connect(peer)
                # The session owns this socket now; the next accept rebinds
                self.listener = None
                return conn, peer

            try:
                return self.listener.accept()
            except ConnectionError as e:
                logger.warning(f"Connection aborted before accept: {e}")
        return None

    # -- run ------------------------------------------------------------------

    def _spawn(self) -> None:
        try:
            self.process = self.launcher(self.command)
        except RedirError as e:
            self._fail(e)
            raise
        logger.info(f"Started {self.command} (pid {self.process.pid})")

    def _supervise(self, session: BridgeSession) -> bool:
        """Poll until the process exits or the client goes away.

        Returns True if hosting should end (process exited or stop() called).
        """
        while True:
            if self._process_exited() or self._stop.is_set():
                return True
            if session.wait_socket_lost(self.config.poll_interval):
                return self._process_exited()

    def run(self) -> int:
        """Bind, then bridge clients to the command until it exits.

        Returns the process exit code (0 if no client ever connected).
        """
        self.bind()
        self.listen()

        try:
            while True:
                if self.listener is None:
                    self._rebind()

                accepted = self.accept()
                if accepted is None:
                    break

                conn, peer = accepted
                self.connections += 1
                self._transition(HostState.ACCEPTED)
                logger.debug(f"Connected: {peer or 'local client'}")
                logger.info("Connected")

                if self.process is None:
                    try:
                        self._spawn()
                    except RedirError:
                        conn.close()
                        raise

                session = BridgeSession(conn, self.config, name=f"session-{self.connections}")
                self.session = session
                session.start(ProcessStreams.from_process(self.process))
                self._transition(HostState.BRIDGING)

                exited = self._supervise(session)
                self._transition(HostState.DRAINING)
                if exited and not self._stop.is_set():
                    # Deliver output the process wrote just before exiting
                    session.join(self.config.drain_timeout, drains_only=True)
                session.close()
                self.session = None

                if exited:
                    break
                logger.info("Client disconnected, waiting for a new connection")
                self._transition(HostState.LISTENING)
        finally:
            self.close()

        return self.process.returncode if self.process else 0

    def _release_listener(self) -> None:
        if self.listener is not None:
            self.listener.close()
            self.listener = None
        if self.target.is_unix:
            try:
                remove_stale_socket(self.target.path)
            except OSError as e:
                logger.warning(f"Could not remove {self.target.path}: {e}")

    def close(self) -> None:
        """Release the socket and reap the process."""
        if self._closed:
            return
        self._closed = True
        if self.session is not None:
            self.session.close()
            self.session = None
        self._release_listener()

        if self.process is not None:
            if not self.process.has_exited():
                self.process.terminate()
            code = self.process.wait_for_exit()
            self.process.close()
            logger.info(f"Process finished (exit code {code})")
        else:
            logger.info("Process finished")

        if self.state != HostState.ERROR:
            self._transition(HostState.CLOSED)
