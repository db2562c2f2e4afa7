# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Client command: attach the console to a running host."""

import click

from redir.cli import cli
from redir.cli.helpers import buffer_option, handle_errors
from redir.client import ClientSupervisor
from redir.config import get_config
from redir.endpoint import resolve


@cli.command("attach")
@click.argument("socket_uri", metavar="SOCKET")
@buffer_option
@handle_errors
def attach(socket_uri: str, buffer_size):
    """Connect to SOCKET and bridge stdin/stdout to the remote process.

    Exits when the host closes the connection.

    Examples:
        redir attach tcp://127.0.0.1:4000
        redir attach unix:/tmp/app.sock
        redir localhost:4000            # attach is the default command
    """
    config = get_config().bridge_config(buffer_size)
    target = resolve(socket_uri)
    ClientSupervisor(target, config).run()
