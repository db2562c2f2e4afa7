"""Logging for redir.

Two sinks:

- a rotating log file that always records everything at DEBUG, including
  the `[Input]`/`[Output]`/`[Error]` trace of bridged data
- the console, via a shared Rich console on stderr (stdout is reserved for
  bridged bytes in attach mode). A detached daemon has no console, so it gets
  a plain stderr handler instead

Usage:
    from redir.utils.logging import get_logger

    logger = get_logger(__name__)
    logger.info("Listening on tcp://127.0.0.1:4000")
    logger.trace("Output", b"hello\\n", "latin-1")

Environment Variables:
    REDIR_DEBUG=1          Show debug output (and the data trace) on the console
    REDIR_LOG_LEVEL=DEBUG  Console level (DEBUG, INFO, WARNING, ERROR)
    REDIR_LOG_FILE=/path   Log file location (default ~/.local/share/redir/logs/redir.log)
"""

import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.markup import escape

from redir.paths import HostPaths

ROOT_LOGGER = "redir"
LOG_FILE_MAX_BYTES = 10 * 1024 * 1024
LOG_FILE_BACKUPS = 5

FILE_FORMAT = "%(asctime)s | %(levelname)-8s | %(threadName)s | %(name)s | %(message)s"
DAEMON_FORMAT = "%(name)s: %(levelname)s: %(message)s"

SUCCESS_LEVEL = 25
logging.addLevelName(SUCCESS_LEVEL, "SUCCESS")

console = Console(stderr=True)

_configured = False
_debug_mode = False
_daemon_mode = False
_log_file: Optional[Path] = None
_console_level = logging.INFO


def _env_flag(name: str) -> bool:
    return os.environ.get(name, "").lower() in ("1", "true", "yes")


def is_debug_mode() -> bool:
    """True if --debug was given or REDIR_DEBUG is set."""
    return _debug_mode or _env_flag("REDIR_DEBUG")


def _log_path() -> Path:
    global _log_file
    if _log_file is None:
        env_path = os.environ.get("REDIR_LOG_FILE")
        _log_file = Path(env_path) if env_path else HostPaths.log_file()
    return _log_file


def _file_handler() -> Optional[logging.Handler]:
    path = _log_path()
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        handler = RotatingFileHandler(
            path, maxBytes=LOG_FILE_MAX_BYTES, backupCount=LOG_FILE_BACKUPS, encoding="utf-8"
        )
    except OSError:
        # No writable log location; console output still works
        return None
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    return handler


def _daemon_handler(level: int) -> logging.Handler:
    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(DAEMON_FORMAT))
    return handler


def _console_level_for(log_level: Optional[str]) -> int:
    name = log_level or os.environ.get("REDIR_LOG_LEVEL") or ("DEBUG" if _debug_mode else "INFO")
    level = logging.getLevelName(name.upper())
    return level if isinstance(level, int) else logging.INFO


def configure_logging(
    debug: bool = False,
    daemon: bool = False,
    log_level: Optional[str] = None,
    log_file: Optional[Path] = None,
    force: bool = False,
) -> None:
    """Set up the file and console sinks.

    Runs once with defaults on first get_logger(); the CLI calls it again
    with force=True after parsing --debug and reading the config file.

    Args:
        debug: Show debug output on the console
        daemon: Detached process: plain stderr handler, no Rich output
        log_level: Console level name (overrides REDIR_LOG_LEVEL)
        log_file: Log file path (overrides REDIR_LOG_FILE)
        force: Reconfigure even if already configured
    """
    global _configured, _debug_mode, _daemon_mode, _log_file, _console_level

    if _configured and not force:
        return

    _debug_mode = debug or _env_flag("REDIR_DEBUG")
    _daemon_mode = daemon
    if log_file:
        _log_file = log_file
    _console_level = _console_level_for(log_level)

    root = logging.getLogger(ROOT_LOGGER)
    root.setLevel(logging.DEBUG)
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    file_handler = _file_handler()
    if file_handler is not None:
        root.addHandler(file_handler)
    if _daemon_mode:
        root.addHandler(_daemon_handler(_console_level))

    _configured = True
    root.debug(
        f"Logging configured: console={logging.getLevelName(_console_level)}, "
        f"debug={_debug_mode}, daemon={_daemon_mode}, file={_log_file}"
    )


class redirLogger:
    """Writes to the log file and, where appropriate, the Rich console.

    Every method takes console_output; debug and trace default to file only
    unless debug mode is on.
    """

    def __init__(self, name: str):
        self.name = name
        self.logger = logging.getLogger(name)
        self.console = console

    def _to_console(self, level: int, requested: bool) -> bool:
        # A daemon's stderr handler already carries these records
        return requested and not _daemon_mode and level >= _console_level

    def _print(self, level: int, requested: bool, markup: str) -> None:
        if self._to_console(level, requested):
            self.console.print(markup, highlight=False)

    def debug(self, message: str, console_output: bool = False) -> None:
        self.logger.debug(message)
        rendered = escape(f"[DEBUG] {message}")
        self._print(logging.DEBUG, console_output or is_debug_mode(), f"[dim]{rendered}[/dim]")

    def trace(self, label: str, data: bytes, encoding: str, console_output: bool = False) -> None:
        """Record one chunk or line moved by a bridge loop.

        The bytes are rendered with the single-byte encoding so every byte
        shows up as exactly one character.
        """
        text = data.decode(encoding, errors="replace").rstrip("\r\n")
        self.logger.debug(f"[{label}] {text}")
        rendered = escape(f"[{label}] {text}")
        self._print(logging.DEBUG, console_output or is_debug_mode(), f"[dim]{rendered}[/dim]")

    def info(self, message: str, console_output: bool = True) -> None:
        self.logger.info(message)
        self._print(logging.INFO, console_output, f"[blue]{escape(message)}[/blue]")

    def success(self, message: str, console_output: bool = True) -> None:
        self.logger.log(SUCCESS_LEVEL, message)
        self._print(SUCCESS_LEVEL, console_output, f"[green]✓ {escape(message)}[/green]")

    def warning(self, message: str, console_output: bool = True) -> None:
        self.logger.warning(message)
        self._print(logging.WARNING, console_output, f"[yellow]⚠ {escape(message)}[/yellow]")

    def error(self, message: str, console_output: bool = True) -> None:
        self.logger.error(message)
        self._print(logging.ERROR, console_output, f"[red]✗ {escape(message)}[/red]")

    def exception(self, message: str, console_output: bool = True) -> None:
        """Log message with the active traceback. Call from an except block."""
        self.logger.exception(message)
        self._print(logging.ERROR, console_output, f"[red]✗ {escape(message)}[/red]")
        if self._to_console(logging.ERROR, console_output) and is_debug_mode():
            self.console.print_exception()


def get_logger(name: str) -> redirLogger:
    """Logger for a module, under the redir namespace."""
    if not _configured:
        configure_logging()
    if name != ROOT_LOGGER and not name.startswith(ROOT_LOGGER + "."):
        name = f"{ROOT_LOGGER}.{name}"
    return redirLogger(name)


def log_startup_info() -> None:
    """Write interpreter and environment details to the log file."""
    logger = get_logger("redir.startup")
    logger.debug(f"Python {sys.version.split()[0]} on {sys.platform}, cwd {os.getcwd()}")
    for var in ("REDIR_DEBUG", "REDIR_LOG_LEVEL", "REDIR_LOG_FILE", "REDIR_CONFIG"):
        value = os.environ.get(var)
        if value:
            logger.debug(f"ENV {var}={value}")
