# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Host commands: start (foreground) and daemon (optionally detached)."""

from typing import Optional

import click

from redir.cli import cli
from redir.cli.helpers import buffer_option, handle_errors
from redir.config import get_config
from redir.daemon import spawn_detached
from redir.endpoint import resolve
from redir.host import HostSupervisor
from redir.process import CommandDescriptor
from redir.utils.logging import configure_logging, get_logger

logger = get_logger(__name__)


def _run_host(socket_uri: str, command: str, buffer_size: Optional[int]) -> int:
    config = get_config().bridge_config(buffer_size)
    target = resolve(socket_uri)
    descriptor = CommandDescriptor.parse(command)
    return HostSupervisor(target, descriptor, config).run()


@cli.command("start")
@click.argument("socket_uri", metavar="SOCKET")
@click.argument("command")
@buffer_option
@handle_errors
def start(socket_uri: str, command: str, buffer_size):
    """Run COMMAND and expose its stdio on SOCKET.

    The command starts when the first client connects. Clients can come and
    go; the host exits once the command does.

    COMMAND is split at its first space: the rest is passed to the
    executable as a single argument, unchanged.

    Examples:
        redir start tcp://127.0.0.1:4000 "echo hello"
        redir start unix:app.sock "python3 app.py"
    """
    code = _run_host(socket_uri, command, buffer_size)
    logger.debug(f"Host finished, command exit code {code}")


@cli.command("daemon")
@click.argument("socket_uri", metavar="SOCKET")
@click.argument("command")
@click.option("--spawn", is_flag=True, help="Re-launch as a detached background process")
@buffer_option
@handle_errors
def daemon(socket_uri: str, command: str, spawn: bool, buffer_size):
    """Host COMMAND on SOCKET, optionally detached (--spawn).

    Examples:
        redir daemon --spawn unix:/tmp/app.sock "python3 app.py"
        redir attach unix:/tmp/app.sock
    """
    if spawn:
        target = resolve(socket_uri)
        CommandDescriptor.parse(command)
        pid = spawn_detached(target, command, buffer_size)
        logger.success(f"Daemon started (pid {pid}) on {target}")
        return

    configure_logging(daemon=True, log_level=get_config().log_level, force=True)
    code = _run_host(socket_uri, command, buffer_size)
    logger.debug(f"Daemon finished, command exit code {code}")
