# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Exception classes for redir.

Setup failures (endpoint parsing, bind, connect, spawn) bubble up to the CLI's
handle_errors decorator, which formats them and exits non-zero. StreamFailure
is the exception copy loops raise internally; it only ever ends one loop.
"""

from typing import Optional


class RedirError(Exception):
    """Base class for all redir errors."""

    title = "Error"

    def __init__(self, message: str, hint: Optional[str] = None):
        super().__init__(message)
        self.hint = hint


class InvalidEndpoint(RedirError):
    """Raised when a target socket string cannot be parsed."""

    title = "Invalid Endpoint"

    def __init__(self, raw: str, message: Optional[str] = None, hint: Optional[str] = None):
        self.raw = raw
        super().__init__(
            message or f"Invalid Socket URI: {raw}",
            hint=hint or "Use [tcp://|udp://]<ipv4|localhost|*>:<port> or unix:<path>",
        )


class MissingPort(InvalidEndpoint):
    """Raised when a network target omits its port."""

    title = "Missing Port"

    def __init__(self, raw: str):
        super().__init__(raw, f"No port specified: {raw}", hint=f"{raw}:<port>")


class UnknownScheme(InvalidEndpoint):
    """Raised when a network target names a scheme other than tcp or udp."""

    title = "Unknown Scheme"

    def __init__(self, raw: str, scheme: str):
        self.scheme = scheme
        super().__init__(raw, f"Unknown Scheme: {scheme}", hint="Supported schemes: tcp, udp")


class BindFailure(RedirError):
    """Raised when the host cannot bind or listen on its endpoint."""

    title = "Bind Failure"


class ConnectFailure(RedirError):
    """Raised when the client cannot connect to a host."""

    title = "Connect Failure"


class SpawnFailure(RedirError):
    """Raised when the command cannot be found or started."""

    title = "Spawn Failure"


class StreamFailure(RedirError):
    """Raised by a copy loop when a read or write fails."""

    title = "Stream Failure"
