# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Error reporting, shared options and the command overview for the CLI."""

import functools
import sys
from typing import Callable, Optional

import click
from rich.markup import escape
from rich.panel import Panel

from redir.errors import RedirError
from redir.utils.logging import console, get_logger

logger = get_logger(__name__)

EXIT_FAILURE = 1
EXIT_INTERRUPTED = 130

OVERVIEW = (
    (
        "Host",
        (
            ("start SOCKET COMMAND", "Run COMMAND and expose its stdio on SOCKET"),
            ("daemon SOCKET COMMAND", "Same as start; --spawn detaches into the background"),
        ),
    ),
    (
        "Client",
        (
            ("[attach] SOCKET", "Bridge this console to a running host (default command)"),
        ),
    ),
    (
        "Sockets",
        (
            ("[tcp://]HOST:PORT", "TCP; HOST is an IPv4 address, localhost or *"),
            ("udp://HOST:PORT", "UDP; the first sender becomes the peer"),
            ("unix:PATH", "Unix domain socket, relative to the current directory"),
        ),
    ),
)


def format_overview() -> str:
    """Short grouped summary shown when redir runs without arguments."""
    width = max(len(usage) for _, rows in OVERVIEW for usage, _ in rows)
    lines = ["Usage: redir [OPTIONS] COMMAND [ARGS]...", ""]
    for section, rows in OVERVIEW:
        lines.append(f"{section}:")
        lines.extend(f"  {usage:<{width}}  {summary}" for usage, summary in rows)
        lines.append("")
    lines.append("Run 'redir COMMAND --help' for details.")
    return "\n".join(lines)


def show_error_panel(title: str, message: str, hint: Optional[str] = None) -> None:
    """Print an error panel to stderr."""
    body = escape(message)
    if hint:
        body += f"\n\n[blue]Try:[/blue]\n  {escape(hint)}"
    console.print(Panel(body, title=f"[red]{escape(title)}[/red]", border_style="red"))


def handle_errors(func: Callable) -> Callable:
    """Report failures of a command and exit non-zero.

    A RedirError becomes a panel titled after its kind (InvalidEndpoint,
    BindFailure, ...) with its hint, and exit status 1. Ctrl-C exits with 130.
    click's own errors and sys.exit() are left alone. Anything else is logged
    with its traceback and reported as a generic error.

    Usage:
        @cli.command()
        @handle_errors
        def start(...):
            ...
    """

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except (SystemExit, click.ClickException):
            raise
        except RedirError as exc:
            logger.error(f"{exc.title}: {exc}", console_output=False)
            show_error_panel(exc.title, str(exc), exc.hint)
            sys.exit(EXIT_FAILURE)
        except KeyboardInterrupt:
            logger.debug("Interrupted by user")
            sys.exit(EXIT_INTERRUPTED)
        except Exception as exc:
            logger.exception(f"Unexpected error: {exc}", console_output=False)
            show_error_panel("Error", str(exc))
            sys.exit(EXIT_FAILURE)

    return wrapper


buffer_option = click.option(
    "--buffer",
    "-b",
    "buffer_size",
    type=click.IntRange(min=1),
    default=None,
    help="Chunk size for socket reads (default: 1024, or buffer_size in config.yml)",
)
