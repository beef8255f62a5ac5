"""Smart-HTTP git transport for `<cat>/<repo>.git/...` paths.

Pack negotiation is delegated to `git upload-pack` / `git receive-pack` in
`--stateless-rpc` mode. This module only frames the ref advertisement, scans
the command section of request bodies to emit push, tag, fetch and info
events, and streams the service output back. Request bodies are piped into
the service as they arrive; only the command section is buffered.

Repositories are never created on demand; unknown repositories answer 404.
"""

import os
import zlib
from typing import AsyncIterator

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import PlainTextResponse
from starlette.convertors import Convertor, register_url_convertor
from starlette.requests import ClientDisconnect

from api.responses import ProcessResponse, get_context
from models.events import ActivityEvent, FetchEvent, InfoEvent, PushEvent, TagEvent
from models.repo import RepoPath
from services.context import GatewayContext
from services.git_introspector import git_executable
from utils.compression import GZIP_WBITS
from utils.pkt_line import command_section_end, read_first_want, read_ref_updates, service_advertisement
from utils.process_runner import ProcessError, open_stream

SERVICES = ("git-upload-pack", "git-receive-pack")

NO_CACHE_HEADERS = {
    "Expires": "Fri, 01 Jan 1980 00:00:00 GMT",
    "Pragma": "no-cache",
    "Cache-Control": "no-cache, max-age=0, must-revalidate",
}


class GitRepoConvertor(Convertor[str]):
    regex = r".+?\.git"

    def convert(self, value: str) -> str:
        return str(value)

    def to_string(self, value: str) -> str:
        return str(value)


register_url_convertor("git_repo", GitRepoConvertor())

router = APIRouter()


def _git_env(request: Request) -> dict[str, str] | None:
    """Pass the client's Git-Protocol header through to the service."""
    protocol = request.headers.get("git-protocol")
    if not protocol:
        return None
    env = dict(os.environ)
    env["GIT_PROTOCOL"] = protocol
    return env


def _forbidden(event: ActivityEvent) -> PlainTextResponse:
    return PlainTextResponse(event.decision.reason or "Forbidden", status_code=403)


async def _request_chunks(request: Request) -> AsyncIterator[bytes]:
    """Yield the request body as it arrives, gunzipped if the client compressed it."""
    content_encoding = request.headers.get("content-encoding") or ""
    decoder = zlib.decompressobj(wbits=GZIP_WBITS) if "gzip" in content_encoding else None
    async for chunk in request.stream():
        if decoder is not None:
            chunk = decoder.decompress(chunk)
        if chunk:
            yield chunk
    if decoder is not None:
        tail = decoder.flush()
        if tail:
            yield tail
        if not decoder.eof:
            raise zlib.error("incomplete gzip request body")


async def _read_command_section(chunks: AsyncIterator[bytes]) -> bytes:
    """Buffer the body until its first flush-pkt has arrived."""
    head = b""
    async for chunk in chunks:
        head += chunk
        if command_section_end(head) is not None:
            break
    return head


async def _prepend(head: bytes, chunks: AsyncIterator[bytes]) -> AsyncIterator[bytes]:
    if head:
        yield head
    async for chunk in chunks:
        yield chunk


@router.api_route("/{repo_name:git_repo}/{service_path:path}", methods=["GET", "POST"])
async def git_protocol(
    repo_name: str, service_path: str, request: Request, ctx: GatewayContext = Depends(get_context)
) -> Response:
    """Dispatch smart-HTTP requests for a hosted repository."""
    try:
        repo = RepoPath.parse(repo_name)
    except ValueError:
        return PlainTextResponse("Not Found", status_code=404)
    if not ctx.repos.exists(repo):
        return PlainTextResponse(f"Repository '{repo}' not found", status_code=404)

    if request.method == "GET" and service_path == "info/refs":
        return await info_refs(repo, request, ctx)
    if request.method == "POST" and service_path in SERVICES:
        return await service_rpc(repo, service_path, request, ctx)
    return PlainTextResponse("Not Found", status_code=404)


async def info_refs(repo: RepoPath, request: Request, ctx: GatewayContext) -> Response:
    """Advertise refs for `?service=git-upload-pack|git-receive-pack`."""
    service = request.query_params.get("service")
    if service not in SERVICES:
        return PlainTextResponse("Only the smart HTTP protocol is supported", status_code=403)

    event = InfoEvent(repo=str(repo), service=service)
    if not await ctx.events.emit(event):
        return _forbidden(event)

    env = _git_env(request)
    try:
        stream = await open_stream(
            [git_executable(), service[len("git-"):], "--stateless-rpc", "--advertise-refs", "."],
            cwd=ctx.repos.path_for(repo),
            env=env,
        )
    except ProcessError as e:
        ctx.log.error("Ref advertisement failed for %s: %s", repo, e.message)
        return PlainTextResponse("Internal Server Error", status_code=500)

    # Protocol v2 clients expect the capability advertisement without a header
    prefix = b""
    if env is None or "version=2" not in env["GIT_PROTOCOL"]:
        prefix = service_advertisement(service)

    return ProcessResponse(
        stream,
        ctx.log,
        prefix=prefix,
        media_type=f"application/x-{service}-advertisement",
        headers=NO_CACHE_HEADERS,
    )


async def service_rpc(repo: RepoPath, service: str, request: Request, ctx: GatewayContext) -> Response:
    """Run one stateless-rpc round of upload-pack or receive-pack."""
    chunks = _request_chunks(request)
    try:
        head = await _read_command_section(chunks)
    except (zlib.error, ClientDisconnect) as e:
        return PlainTextResponse(f"Invalid request body: {e}", status_code=400)

    if service == "git-upload-pack":
        want = read_first_want(head)
        if want is not None:
            event = FetchEvent(repo=str(repo), commit=want)
            if not await ctx.events.emit(event):
                return _forbidden(event)
    else:
        for update in read_ref_updates(head):
            if update.is_tag:
                event = TagEvent(repo=str(repo), commit=update.new, version=update.short_name)
            else:
                event = PushEvent(repo=str(repo), commit=update.new, branch=update.short_name)
            if not await ctx.events.emit(event):
                return _forbidden(event)

    try:
        stream = await open_stream(
            [git_executable(), service[len("git-"):], "--stateless-rpc", "."],
            cwd=ctx.repos.path_for(repo),
            stdin_data=_prepend(head, chunks),
            env=_git_env(request),
        )
    except (zlib.error, ClientDisconnect) as e:
        ctx.log.warn("Request body for %s on %s could not be read: %s", service, repo, e)
        return PlainTextResponse(f"Invalid request body: {e}", status_code=400)
    except ProcessError as e:
        ctx.log.error("%s failed for %s: %s", service, repo, e.message)
        return PlainTextResponse("Internal Server Error", status_code=500)

    return ProcessResponse(
        stream,
        ctx.log,
        media_type=f"application/x-{service}-result",
        headers=NO_CACHE_HEADERS,
    )
