"""Tests for the streaming subprocess runner."""

import asyncio
import sys

import pytest

from utils.process_runner import ProcessError, ProcessStream, open_stream


def test_streams_stdout():
    async def run():
        stream = await open_stream(["git", "--version"])
        data = b"".join([chunk async for chunk in stream.chunks()])
        await stream.close()
        return data, stream.returncode

    data, returncode = asyncio.run(run())

    assert data.startswith(b"git version")
    assert returncode == 0


def test_stdin_is_fed_to_the_command():
    async def run():
        stream = await open_stream(
            [sys.executable, "-c", "import sys; sys.stdout.write(sys.stdin.read().upper())"],
            stdin_data=b"hello",
        )
        data = b"".join([chunk async for chunk in stream.chunks()])
        await stream.close()
        return data

    assert asyncio.run(run()) == b"HELLO"


def test_missing_executable_raises_process_error():
    with pytest.raises(ProcessError, match="could not start"):
        asyncio.run(open_stream(["definitely-not-a-real-command-xyz"]))


def test_failure_before_output_is_reported_with_stderr(tmp_path):
    with pytest.raises(ProcessError) as excinfo:
        asyncio.run(open_stream(["git", "cat-file", "-p", "HEAD"], cwd=tmp_path))

    assert excinfo.value.returncode != 0
    assert excinfo.value.message


def test_close_kills_running_command():
    async def run():
        stream = await open_stream(
            [sys.executable, "-c", "import sys, time; print('ready', flush=True); time.sleep(60)"]
        )
        await stream.close()
        return stream.returncode

    returncode = asyncio.run(run())

    assert returncode is not None
    assert returncode != 0


# Writes forever, so its stdout pipe fills up as soon as nobody reads it
CHATTY = "import sys\nwhile True:\n    sys.stdout.buffer.write(b'x' * 65536)\n"


def test_close_kills_command_blocked_on_full_stdout():
    async def run():
        stream = await open_stream([sys.executable, "-c", CHATTY])
        await asyncio.sleep(0.5)
        await asyncio.wait_for(stream.close(), 10)
        return stream.returncode

    returncode = asyncio.run(run())

    assert returncode is not None
    assert returncode != 0


def test_stdin_is_fed_from_async_chunks():
    async def body():
        yield b"hel"
        yield b"lo "
        yield b"world"

    async def run():
        stream = await open_stream(
            [sys.executable, "-c", "import sys; sys.stdout.write(sys.stdin.read().upper())"],
            stdin_data=body(),
        )
        data = b"".join([chunk async for chunk in stream.chunks()])
        await stream.close()
        return data

    assert asyncio.run(run()) == b"HELLO WORLD"


def test_failing_stdin_source_is_raised_and_command_reaped():
    started = []

    async def body():
        yield b"partial"
        raise ValueError("truncated request body")

    async def run():
        stream = ProcessStream(
            [sys.executable, "-c", "import sys, time; sys.stdin.read(); time.sleep(60)"],
            stdin_data=body(),
        )
        started.append(stream)
        await stream.start()
        try:
            await stream.input_done()
        finally:
            await asyncio.wait_for(stream.close(), 10)

    with pytest.raises(ValueError, match="truncated request body"):
        asyncio.run(run())

    assert started[0].returncode is not None
