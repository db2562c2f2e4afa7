# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Target socket string parsing.

Two address styles are accepted:

    [tcp://|udp://]<ipv4|localhost|*>:<port>
    unix:<path>

Resolution is side-effect free: "localhost" and "*" are kept as address
tokens and only turned into numeric addresses by redir.sockets when a socket
is bound or connected.
"""

import ipaddress
import os
import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from redir.errors import InvalidEndpoint, MissingPort, UnknownScheme

ADDRESS_PATTERN = re.compile(
    r"^(?:(?P<scheme>[A-Za-z][A-Za-z0-9+.-]*)://)?"
    r"(?P<host>(?:\d{1,3}\.){3}\d{1,3}|localhost|\*)"
    r"(?::(?P<port>\d*))?$"
)
UNIX_PATTERN = re.compile(r"^unix:(?P<path>.*)$", re.IGNORECASE)

DEFAULT_SCHEME = "tcp"
MAX_PORT = 65535

# Opaque address tokens the resolver does not turn into numeric addresses
LOCALHOST = "localhost"
ANY_ADDRESS = "*"


class TransportKind(str, Enum):
    TCP = "tcp"
    UDP = "udp"
    UNIX = "unix"


@dataclass(frozen=True)
class TargetDescriptor:
    """Resolved transport kind plus address.

    Network targets carry host and port, unix targets carry an absolute path.
    Exactly one of the two is populated.
    """

    kind: TransportKind
    host: Optional[str] = None
    port: Optional[int] = None
    path: Optional[str] = None

    def __post_init__(self):
        if self.kind is TransportKind.UNIX:
            if not self.path or self.host is not None or self.port is not None:
                raise ValueError("unix targets carry a path and no host/port")
        elif self.path is not None or self.host is None or self.port is None:
            raise ValueError("network targets carry host and port and no path")

    @property
    def is_unix(self) -> bool:
        return self.kind is TransportKind.UNIX

    @property
    def is_datagram(self) -> bool:
        return self.kind is TransportKind.UDP

    def __str__(self) -> str:
        if self.is_unix:
            return f"unix:{self.path}"
        return f"{self.kind.value}://{self.host}:{self.port}"


def resolve(raw: str, cwd: Optional[str] = None) -> TargetDescriptor:
    """Parse a target socket string into a TargetDescriptor.

    Args:
        raw: Target string as typed by the user
        cwd: Directory relative unix paths are anchored at (default: os.getcwd())

    Raises:
        InvalidEndpoint: raw matches neither address style
        MissingPort: a network address without a port
        UnknownScheme: a network address with a scheme other than tcp/udp
    """
    raw = raw.strip()

    unix_match = UNIX_PATTERN.match(raw)
    if unix_match:
        path = unix_match.group("path")
        if not path:
            raise InvalidEndpoint(raw, f"Empty unix socket path: {raw}")
        if not os.path.isabs(path):
            path = os.path.join(cwd or os.getcwd(), path)
        return TargetDescriptor(TransportKind.UNIX, path=path)

    match = ADDRESS_PATTERN.match(raw)
    if not match:
        raise InvalidEndpoint(raw)

    host = match.group("host")
    if host not in (LOCALHOST, ANY_ADDRESS):
        try:
            ipaddress.IPv4Address(host)
        except ipaddress.AddressValueError:
            raise InvalidEndpoint(raw, f"Invalid IPv4 address: {host}")

    scheme = (match.group("scheme") or DEFAULT_SCHEME).lower()
    if scheme == TransportKind.TCP.value:
        kind = TransportKind.TCP
    elif scheme == TransportKind.UDP.value:
        kind = TransportKind.UDP
    else:
        raise UnknownScheme(raw, scheme)

    port_text = match.group("port")
    if not port_text:
        raise MissingPort(raw)
    port = int(port_text)
    if port > MAX_PORT:
        raise InvalidEndpoint(raw, f"Port out of range: {port}")

    return TargetDescriptor(kind, host=host, port=port)
