"""Response helpers shared by the route modules."""

from typing import AsyncIterator, Iterator

from fastapi import Request, Response
from fastapi.responses import PlainTextResponse, StreamingResponse
from git.exc import CommandError
from starlette.concurrency import iterate_in_threadpool
from starlette.requests import ClientDisconnect

from models.repo import RepoPath
from services.activity_log import ActivityLogger
from services.context import GatewayContext
from utils.compression import gzip_bytes, gzip_stream, should_compress
from utils.process_runner import ProcessStream

TEXT_PLAIN = "text/plain; charset=utf-8"


class InvalidParameterError(ValueError):
    """A path parameter is not safe to use."""


def get_context(request: Request) -> GatewayContext:
    """FastAPI dependency returning the application's GatewayContext."""
    return request.app.state.context


def parse_repo(category: str, name: str) -> RepoPath:
    try:
        return RepoPath.from_params(category, name)
    except ValueError as e:
        raise InvalidParameterError(str(e)) from e


def check_ref(ref: str) -> str:
    """Refs reach git as arguments, so they may not look like options."""
    if not ref or ref.startswith("-") or "\0" in ref:
        raise InvalidParameterError(f"Invalid ref: {ref!r}")
    return ref


def wants_gzip(request: Request) -> bool:
    return should_compress(request.headers.get("accept-encoding"))


def text_response(body: str, request: Request, status_code: int = 200) -> Response:
    """Plain-text response, gzip-compressed when the client accepts it."""
    data = body.encode("utf-8")
    headers = {"Vary": "Accept-Encoding"}
    if wants_gzip(request):
        data = gzip_bytes(data)
        headers["Content-Encoding"] = "gzip"
    return Response(content=data, status_code=status_code, media_type=TEXT_PLAIN, headers=headers)


def text_stream_response(lines: Iterator[str], request: Request) -> StreamingResponse:
    """Plain-text response streamed line by line; `lines` is consumed in a worker thread."""
    content: AsyncIterator[bytes] = _encode_lines(iterate_in_threadpool(lines))
    headers = {"Vary": "Accept-Encoding"}
    if wants_gzip(request):
        content = gzip_stream(content)
        headers["Content-Encoding"] = "gzip"
    return StreamingResponse(content, media_type=TEXT_PLAIN, headers=headers)


async def _encode_lines(lines: AsyncIterator[str]) -> AsyncIterator[bytes]:
    async for line in lines:
        yield line.encode("utf-8")


def not_found_text(detail: str = "Not Found") -> PlainTextResponse:
    return PlainTextResponse(detail, status_code=404)


def command_error_text(error: CommandError) -> str:
    stderr = getattr(error, "stderr", "") or ""
    stderr = stderr.strip()
    if stderr.startswith("stderr:"):
        stderr = stderr[len("stderr:"):].strip()
    return stderr.strip("'\n ") or str(error)


class ProcessResponse(StreamingResponse):
    """Streams a command's stdout and always reaps the command afterwards.

    The command is killed if the response ends early, e.g. when the client
    disconnects mid-stream. Transport failures are logged, never raised.
    """

    def __init__(
        self,
        stream: ProcessStream,
        log: ActivityLogger,
        compress: bool = False,
        prefix: bytes = b"",
        status_code: int = 200,
        headers: dict[str, str] | None = None,
        media_type: str | None = None,
    ):
        headers = dict(headers or {})
        content: AsyncIterator[bytes] = _with_prefix(prefix, stream.chunks())
        if compress:
            content = gzip_stream(content)
            headers["Content-Encoding"] = "gzip"
            headers["Vary"] = "Accept-Encoding"
        super().__init__(content, status_code=status_code, headers=headers, media_type=media_type)
        self.stream = stream
        self.log = log

    async def __call__(self, scope, receive, send) -> None:
        try:
            await super().__call__(scope, receive, send)
        except (OSError, ClientDisconnect) as exc:
            self.log.error("Response stream for '%s' failed: %s", self.stream.command, exc)
        finally:
            await self.stream.close()


async def _with_prefix(prefix: bytes, chunks: AsyncIterator[bytes]) -> AsyncIterator[bytes]:
    if prefix:
        yield prefix
    async for chunk in chunks:
        yield chunk
