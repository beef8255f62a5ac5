"""Tests for streaming a command's output as an HTTP response."""

import asyncio
import io
import sys

from api.responses import ProcessResponse
from services.activity_log import ActivityLogger
from utils.process_runner import open_stream

CHATTY = "import sys\nwhile True:\n    sys.stdout.buffer.write(b'x' * 65536)\n"

SCOPE = {"type": "http", "asgi": {"version": "3.0", "spec_version": "2.4"}}


async def _never_disconnects():
    await asyncio.Event().wait()


def test_streams_command_output():
    log_stream = io.StringIO()
    sent = []

    async def send(message):
        sent.append(message)

    async def run():
        stream = await open_stream([sys.executable, "-c", "print('hello')"])
        response = ProcessResponse(stream, ActivityLogger("debug", stream=log_stream), media_type="text/plain")
        await response(SCOPE, _never_disconnects, send)
        return stream.returncode

    returncode = asyncio.run(run())

    assert returncode == 0
    assert sent[0]["type"] == "http.response.start"
    body = b"".join(message.get("body", b"") for message in sent[1:])
    assert body.strip() == b"hello"


def test_client_disconnect_kills_command_and_logs_error():
    log_stream = io.StringIO()
    sent = []

    async def send(message):
        sent.append(message)
        if len(sent) >= 3:
            raise OSError("Connection reset by peer")

    async def run():
        stream = await open_stream([sys.executable, "-c", CHATTY])
        response = ProcessResponse(stream, ActivityLogger("debug", stream=log_stream))
        await asyncio.wait_for(response(SCOPE, _never_disconnects, send), 10)
        return stream.returncode

    returncode = asyncio.run(run())

    assert returncode is not None
    assert returncode != 0
    error_lines = [line for line in log_stream.getvalue().splitlines() if "Response stream for" in line]
    assert error_lines
    assert "ERROR" in error_lines[0]
