# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""redir command line: start, daemon and attach."""

import click

from redir import __version__
from redir.cli.helpers.utils import format_overview
from redir.config import get_config
from redir.utils.logging import configure_logging, log_startup_info


class DefaultCommandGroup(click.Group):
    """Group that falls back to a default subcommand.

    `redir tcp://127.0.0.1:4000` is treated as `redir attach tcp://127.0.0.1:4000`.
    """

    default_command = "attach"

    def _group_options(self, ctx) -> dict:
        """Option names of the group itself, mapped to whether they take no value."""
        options = {}
        for param in self.get_params(ctx):
            if isinstance(param, click.Option):
                for name in (*param.opts, *param.secondary_opts):
                    options[name] = param.is_flag or param.count
        return options

    def parse_args(self, ctx, args):
        # The default command goes in front of the first token the group does
        # not own, so `redir -b 10 host:port` hands -b to attach
        options = self._group_options(ctx)
        index = 0
        while index < len(args):
            arg = args[index]
            name = arg.split("=", 1)[0].lower()
            if name in options:
                index += 1 if options[name] or "=" in arg else 2
                continue
            if arg.lower() not in self.commands:
                args = [*args[:index], self.default_command, *args[index:]]
            break
        return super().parse_args(ctx, args)


@click.group(
    cls=DefaultCommandGroup,
    invoke_without_command=True,
    context_settings={"token_normalize_func": lambda token: token.lower()},
)
@click.version_option(version=__version__, prog_name="redir")
@click.option("--debug", is_flag=True, help="Verbose output, including every bridged line")
@click.pass_context
def cli(ctx, debug):
    """redir - Expose a process's stdio over a socket and attach to it."""
    configure_logging(debug=debug, log_level=get_config().log_level, force=True)
    log_startup_info()

    if ctx.invoked_subcommand is None:
        click.echo(format_overview())


def main():
    """Console script entry point."""
    cli()


from redir.cli.commands import attach  # noqa: E402,F401
from redir.cli.commands import host  # noqa: E402,F401
