# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Socket construction for resolved targets.

create_socket() only builds an unconnected socket of the right family and
type. Binding, listening and connecting are left to the supervisors so each
failure can be reported on its own.
"""

import os
import socket
import stat
from enum import Enum
from typing import Tuple, Union

from redir.endpoint import ANY_ADDRESS, LOCALHOST, TargetDescriptor, TransportKind

LOOPBACK_ADDRESS = "127.0.0.1"
BIND_ALL_ADDRESS = "0.0.0.0"

SocketAddress = Union[str, Tuple[str, int]]


class Role(str, Enum):
    LISTENER = "listener"
    CONNECTOR = "connector"


def create_socket(descriptor: TargetDescriptor, role: Role) -> socket.socket:
    """Create an unbound, unconnected socket for the descriptor."""
    if descriptor.kind is TransportKind.UNIX:
        sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
    elif descriptor.kind is TransportKind.TCP:
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM, socket.IPPROTO_TCP)
    else:
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM, socket.IPPROTO_UDP)

    if role is Role.LISTENER and descriptor.kind is TransportKind.TCP:
        # Let the host rebind right after a previous run left TIME_WAIT sockets
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
    return sock


def socket_address(descriptor: TargetDescriptor, role: Role) -> SocketAddress:
    """Turn a descriptor into an address for bind() or connect().

    "*" binds all interfaces for listeners and means loopback for connectors;
    "localhost" is always the IPv4 loopback address.
    """
    if descriptor.is_unix:
        return descriptor.path

    host = descriptor.host
    if host == LOCALHOST:
        host = LOOPBACK_ADDRESS
    elif host == ANY_ADDRESS:
        host = BIND_ALL_ADDRESS if role is Role.LISTENER else LOOPBACK_ADDRESS
    return (host, descriptor.port)


def remove_stale_socket(path: str) -> bool:
    """Remove a leftover unix socket file. Returns True if one was removed.

    Regular files are left alone so a typo cannot delete user data; bind()
    then fails with a BindFailure.
    """
    try:
        mode = os.lstat(path).st_mode
    except FileNotFoundError:
        return False
    if not stat.S_ISSOCK(mode):
        return False
    os.unlink(path)
    return True
