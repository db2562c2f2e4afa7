# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Client side: connect to a running host and bridge the local console.

Lifecycle: IDLE -> RESOLVED -> CONNECTING -> CONNECTED -> BRIDGING -> CLOSED.
A failed connect is final; retrying is up to the caller.
"""

import socket
from enum import Enum
from typing import Optional, Union

from redir.bridge import ConsoleStreams, bridge
from redir.config import BridgeConfig
from redir.endpoint import TargetDescriptor, resolve
from redir.errors import ConnectFailure, RedirError
from redir.sockets import Role, create_socket, socket_address
from redir.utils.logging import get_logger

logger = get_logger(__name__)


class ClientState(str, Enum):
    IDLE = "idle"
    RESOLVED = "resolved"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    BRIDGING = "bridging"
    CLOSED = "closed"
    ERROR = "error"


class ClientSupervisor:
    """Attaches the console (or given streams) to a host."""

    def __init__(
        self,
        target: Union[str, TargetDescriptor],
        config: BridgeConfig,
        console: Optional[ConsoleStreams] = None,
    ):
        self.raw_target = target
        self.target: Optional[TargetDescriptor] = None
        self.config = config
        self.console = console
        self.state = ClientState.IDLE

    def _transition(self, state: ClientState) -> None:
        logger.debug(f"Client state: {self.state.value} -> {state.value}")
        self.state = state

    def resolve(self) -> TargetDescriptor:
        if isinstance(self.raw_target, TargetDescriptor):
            self.target = self.raw_target
        else:
            try:
                self.target = resolve(self.raw_target)
            except RedirError:
                self._transition(ClientState.ERROR)
                raise
        self._transition(ClientState.RESOLVED)
        return self.target

    def connect(self) -> socket.socket:
        """Open a connection to the resolved target."""
        if self.target is None:
            self.resolve()

        sock = create_socket(self.target, Role.CONNECTOR)
        address = socket_address(self.target, Role.CONNECTOR)
        self._transition(ClientState.CONNECTING)
        try:
            sock.connect(address)
        except OSError as e:
            sock.close()
            self._transition(ClientState.ERROR)
            raise ConnectFailure(
                f"Unable to connect to socket {self.target}: {e}",
                hint="Is a host running? Start one with: redir start <socket> <command>",
            ) from e

        self._transition(ClientState.CONNECTED)
        logger.debug(f"Connected to {self.target}")
        return sock

    def run(self) -> None:
        """Connect and bridge until the host closes the connection."""
        sock = self.connect()
        console = self.console or ConsoleStreams.from_stdio()
        self._transition(ClientState.BRIDGING)
        try:
            bridge(sock, console, self.config, name="attach")
        finally:
            self._transition(ClientState.CLOSED)
        logger.debug("Connection closed")
