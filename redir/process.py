# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Child process launching with piped stdio.

The command string is split on its first whitespace only: everything after
it is handed to the executable as ONE argument, exactly as typed. No shell
tokenization happens, so "echo hello world" prints "hello world" while
"sh -c 'echo hi'" passes "-c 'echo hi'" to sh as a single argument.

All three streams are raw bytes. Output is consumed line by line through
LineReader, which waits with select() so readers can be stopped.
"""

import os
import re
import select
import subprocess
import threading
import time
from dataclasses import dataclass, field
from typing import IO, List, Optional

from redir.errors import SpawnFailure
from redir.utils.logging import get_logger

logger = get_logger(__name__)

READ_CHUNK_SIZE = 4096
TERMINATE_TIMEOUT = 5.0

_FIRST_WHITESPACE = re.compile(r"\s")


@dataclass(frozen=True)
class CommandDescriptor:
    """Executable plus its argument list."""

    executable: str
    arguments: List[str] = field(default_factory=list)

    @classmethod
    def parse(cls, command: str) -> "CommandDescriptor":
        """Split a command line on its first whitespace character."""
        command = command.lstrip()
        if not command.strip():
            raise SpawnFailure("Empty command", hint='redir start <socket> "<command>"')

        match = _FIRST_WHITESPACE.search(command)
        if not match:
            return cls(command)

        executable = command[: match.start()]
        remainder = command[match.end() :]
        return cls(executable, [remainder] if remainder else [])

    @property
    def argv(self) -> List[str]:
        return [self.executable, *self.arguments]

    def __str__(self) -> str:
        return " ".join(self.argv)


class LineReader:
    """Line-oriented reader over a file descriptor.

    readline() returns a line including its newline, the trailing partial
    line at end of stream, b"" once the stream is exhausted, or None if no
    complete line arrived within the timeout. Unterminated data stays
    buffered across calls and can be pushed back with unread().
    """

    def __init__(self, stream: IO[bytes], chunk_size: int = READ_CHUNK_SIZE):
        self._stream = stream
        self._fd = stream.fileno()
        self._chunk_size = chunk_size
        self._buffer = b""
        self._eof = False
        self._lock = threading.Lock()

    @property
    def at_eof(self) -> bool:
        return self._eof and not self._buffer

    def readline(self, timeout: Optional[float] = None) -> Optional[bytes]:
        with self._lock:
            deadline = None if timeout is None else time.monotonic() + timeout
            while True:
                newline = self._buffer.find(b"\n")
                if newline >= 0:
                    line = self._buffer[: newline + 1]
                    self._buffer = self._buffer[newline + 1 :]
                    return line

                if self._eof:
                    line, self._buffer = self._buffer, b""
                    return line

                remaining = None
                if deadline is not None:
                    remaining = max(0.0, deadline - time.monotonic())
                ready, _, _ = select.select([self._fd], [], [], remaining)
                if not ready:
                    return None

                chunk = os.read(self._fd, self._chunk_size)
                if chunk:
                    self._buffer += chunk
                else:
                    self._eof = True

    def unread(self, data: bytes) -> None:
        """Push data back so the next readline() returns it first."""
        if not data:
            return
        with self._lock:
            self._buffer = data + self._buffer

    def close(self) -> None:
        self._stream.close()


class StreamWriter:
    """Unbuffered writer that flushes after every write."""

    def __init__(self, stream: IO[bytes]):
        self._stream = stream
        self._lock = threading.Lock()

    def write(self, data: bytes) -> None:
        with self._lock:
            view = memoryview(data)
            while view:
                written = self._stream.write(view)
                if written is None:
                    written = 0
                view = view[written:]
            self._stream.flush()

    def close(self) -> None:
        try:
            self._stream.close()
        except OSError:
            # Child already gone; its end of the pipe is closed
            pass


class ProcessHandle:
    """A launched child process and its three stdio streams.

    The handle owns the process. Bridges borrow stdin, stdout and stderr but
    only the host supervisor terminates or reaps the process.
    """

    def __init__(self, command: CommandDescriptor, popen: subprocess.Popen):
        self.command = command
        self._popen = popen
        self.stdin = StreamWriter(popen.stdin)
        self.stdout = LineReader(popen.stdout)
        self.stderr = LineReader(popen.stderr)

    @property
    def pid(self) -> int:
        return self._popen.pid

    @property
    def returncode(self) -> Optional[int]:
        return self._popen.returncode

    def has_exited(self) -> bool:
        """Non-blocking exit check."""
        return self._popen.poll() is not None

    def wait_for_exit(self, timeout: Optional[float] = None) -> Optional[int]:
        """Block until the process exits. Returns None if timeout elapses first."""
        try:
            return self._popen.wait(timeout=timeout)
        except subprocess.TimeoutExpired:
            return None

    def terminate(self, timeout: float = TERMINATE_TIMEOUT) -> Optional[int]:
        """Terminate the process, killing it if it does not exit in time."""
        if self.has_exited():
            return self.returncode
        logger.debug(f"Terminating process {self.pid}")
        self._popen.terminate()
        code = self.wait_for_exit(timeout)
        if code is None:
            logger.warning(f"Process {self.pid} ignored SIGTERM, killing")
            self._popen.kill()
            code = self.wait_for_exit()
        return code

    def close(self) -> None:
        """Close the parent's ends of all three pipes."""
        self.stdin.close()
        self.stdout.close()
        self.stderr.close()


def launch(
    command: CommandDescriptor,
    cwd: Optional[str] = None,
    env: Optional[dict] = None,
) -> ProcessHandle:
    """Start the command with stdin, stdout and stderr on pipes.

    Raises:
        SpawnFailure: the executable cannot be found or started
    """
    try:
        popen = subprocess.Popen(
            command.argv,
            stdin=subprocess.PIPE,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            bufsize=0,
            cwd=cwd,
            env=env,
        )
    except FileNotFoundError as e:
        raise SpawnFailure(
            f"Command not found: {command.executable}",
            hint="Check the executable name and PATH",
        ) from e
    except OSError as e:
        raise SpawnFailure(f"Failed to start {command.executable}: {e}") from e

    logger.debug(f"Started process {popen.pid}: {command}")
    return ProcessHandle(command, popen)
