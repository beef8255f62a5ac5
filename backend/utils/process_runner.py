"""Streaming subprocess runner.

Commands are always started from an argument vector, never through a shell.
Standard output is exposed as an async iterator of chunks so callers can pipe
it into an HTTP response without buffering the whole output in memory.
Standard input can likewise be fed from an async iterator of chunks.
"""

from __future__ import annotations

import asyncio
import logging
import subprocess
from pathlib import Path
from typing import AsyncIterable, AsyncIterator, Sequence, Union

logger = logging.getLogger(__name__)

# Read size used by subprocess.py internally
POPEN_READ_SIZE = 32768

StdinData = Union[bytes, AsyncIterable[bytes]]


class ProcessError(Exception):
    """A command could not be started or exited with a non-zero status."""

    def __init__(self, argv: Sequence[str], message: str, returncode: int | None = None):
        self.argv = list(argv)
        self.message = message
        self.returncode = returncode
        super().__init__(message)


def try_utf8_decode(data: bytes) -> str:
    return data.decode("utf-8", errors="replace")


class ProcessStream:
    """A running command whose stdout is consumed as a stream of chunks.

    Usage::

        stream = await ProcessStream(["git", "archive", "HEAD"], cwd=repo).start()
        await stream.prime()
        async for chunk in stream.chunks():
            ...
        await stream.close()
    """

    def __init__(
        self,
        argv: Sequence[str],
        cwd: Path | str | None = None,
        stdin_data: StdinData | None = None,
        env: dict[str, str] | None = None,
    ):
        self.argv = list(argv)
        self.cwd = cwd
        self.env = env
        self._stdin_data = stdin_data
        self._proc: asyncio.subprocess.Process | None = None
        self._stderr_chunks: list[bytes] = []
        self._stderr_task: asyncio.Task | None = None
        self._stdin_task: asyncio.Task | None = None
        self._pending = b""

    @property
    def command(self) -> str:
        return " ".join(self.argv)

    @property
    def returncode(self) -> int | None:
        return self._proc.returncode if self._proc else None

    @property
    def stderr_text(self) -> str:
        return try_utf8_decode(b"".join(self._stderr_chunks)).strip()

    async def start(self) -> "ProcessStream":
        """
        Launch the command.

        Returns:
            ProcessStream: self, for chaining.

        Raises:
            ProcessError: If the executable cannot be started.
        """
        try:
            self._proc = await asyncio.create_subprocess_exec(
                *self.argv,
                cwd=str(self.cwd) if self.cwd is not None else None,
                stdin=subprocess.PIPE if self._stdin_data is not None else subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                env=self.env,
            )
        except OSError as e:
            raise ProcessError(self.argv, f"could not start '{self.command}': {e}") from e

        self._stderr_task = asyncio.create_task(self._read_stderr())
        if self._stdin_data is not None:
            self._stdin_task = asyncio.create_task(self._write_stdin(self._stdin_data))
        return self

    async def _read_stderr(self) -> None:
        while True:
            data = await self._proc.stderr.read(POPEN_READ_SIZE)
            if not data:
                break
            self._stderr_chunks.append(data)

    async def _write_stdin(self, data: StdinData) -> None:
        stdin = self._proc.stdin
        try:
            if isinstance(data, bytes):
                stdin.write(data)
                await stdin.drain()
            else:
                async for chunk in data:
                    stdin.write(chunk)
                    await stdin.drain()
        except (BrokenPipeError, ConnectionResetError):
            logger.warning("'%s' closed stdin before reading all input", self.command)
        finally:
            stdin.close()

    async def input_done(self) -> None:
        """
        Wait until all stdin data has been handed to the command.

        Raises:
            Exception: Whatever the stdin source raised while being read.
        """
        if self._stdin_task is not None:
            await self._stdin_task

    async def prime(self) -> None:
        """
        Read ahead the first chunk of output.

        A command that exits non-zero without writing anything is reported here,
        before any response headers are sent.

        Raises:
            ProcessError: If the command produced no output and failed.
        """
        self._pending = await self._proc.stdout.read(POPEN_READ_SIZE)
        if not self._pending:
            returncode = await self.wait()
            if returncode:
                raise ProcessError(self.argv, self.stderr_text or f"exit status {returncode}", returncode)

    async def chunks(self) -> AsyncIterator[bytes]:
        """Yield stdout chunks until EOF, then reap the process."""
        if self._pending:
            pending, self._pending = self._pending, b""
            yield pending
        while True:
            data = await self._proc.stdout.read(POPEN_READ_SIZE)
            if not data:
                break
            yield data

        returncode = await self.wait()
        if returncode:
            logger.error("fail to execute '%s': %s - %s", self.command, returncode, self.stderr_text)

    async def wait(self) -> int:
        returncode = await self._proc.wait()
        for task in (self._stdin_task, self._stderr_task):
            if task is not None and not task.done():
                await task
        return returncode

    async def close(self) -> None:
        """Kill the command if it is still running and release its pipes.

        Unread stdout is drained after the kill: a paused pipe never reports
        EOF, and the process is not reaped until every pipe has closed.
        """
        if self._proc is None:
            return
        if self._proc.returncode is None:
            try:
                self._proc.kill()
            except ProcessLookupError:
                pass
        if self._stdin_task is not None and not self._stdin_task.done():
            self._stdin_task.cancel()
        self._pending = b""
        if self._proc.stdout is not None:
            while await self._proc.stdout.read(POPEN_READ_SIZE):
                pass
        await self._proc.wait()
        if self._stderr_task is not None:
            await self._stderr_task


async def open_stream(
    argv: Sequence[str],
    cwd: Path | str | None = None,
    stdin_data: StdinData | None = None,
    env: dict[str, str] | None = None,
) -> ProcessStream:
    """Start a command, wait for its input to be written and prime its output.

    Raises:
        ProcessError: If the command cannot start or fails before writing output.
        Exception: Whatever an async stdin source raised while being read.
    """
    stream = await ProcessStream(argv, cwd=cwd, stdin_data=stdin_data, env=env).start()
    try:
        await stream.input_done()
        await stream.prime()
    except BaseException:
        await stream.close()
        raise
    return stream
