"""Housekeeping and content route definitions.

Two routers are exported and must be mounted around the smart-HTTP router:

- `router`: /status and the /repos/... endpoints.
- `content_router`: tarballs, raw files and the usage catch-all. Its raw-file
  route would also match `*.git` paths, so it is mounted last.
"""

import asyncio
from urllib.parse import quote

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import JSONResponse, PlainTextResponse, RedirectResponse
from git.exc import CommandError

from api.responses import (
    TEXT_PLAIN,
    InvalidParameterError,
    ProcessResponse,
    check_ref,
    command_error_text,
    get_context,
    not_found_text,
    parse_repo,
    text_response,
    text_stream_response,
    wants_gzip,
)
from models.repo import RepoPath, TagEntry, TreeEntry, TreeListing
from services.context import GatewayContext
from utils.process_runner import ProcessError
from utils.settings import SERVICE_NAME, SERVICE_VERSION
from utils.tree_parser import TreeParseError

router = APIRouter()
content_router = APIRouter()

NOT_FOUND_JSON = {"message": "Not Found"}
TARBALL_SUFFIXES = (".tar.gz", ".tgz", ".tar")

USAGE = (
    "Usage:\n"
    "  http://server:port/status                        Returns the status of the server.\n"
    "  http://server:port/repos/ls                      Returns a list of repositories.\n"
    "  http://server:port/repos/mk/<cat>/<repo[.git]>   Create a new repo on the server.\n"
    "  http://server:port/repos/rm/<cat>/<repo[.git]>   Archives an existing repo on the server.\n"
    "  http://server:port/repos/<cat>/<repo>/tags       Lists the tags of a repo as JSON.\n"
    "  http://server:port/repos/<cat>/<repo>/git/trees/<ref>[?recursive=1]\n"
    "                                                   Lists the tree of a ref as JSON.\n"
    "  http://server:port/<cat>/<repo>/tarball/<ref>    Downloads a tarball of a ref.\n"
    "  http://server:port/<cat>/<repo>/<ref>/<path>     Returns the raw contents of a file.\n"
)


def _not_found_json() -> JSONResponse:
    return JSONResponse(status_code=404, content=NOT_FOUND_JSON)


async def _in_thread(ctx: GatewayContext, func, *args):
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(ctx.executor, func, *args)


# ============================================================================
# STATUS & REPOSITORY HOUSEKEEPING
# ============================================================================


@router.get("/status")
async def status(request: Request, ctx: GatewayContext = Depends(get_context)) -> Response:
    """
    Report the service name, version and the git binary's version.

    A git binary that cannot be started is reported in the body; the response
    itself still succeeds.
    """
    try:
        git_version = await ctx.git.version()
    except (CommandError, OSError) as e:
        ctx.log.error("git --version failed: %s", e)
        git_version = f"git version unavailable: {e}"
    return text_response(f"{SERVICE_NAME} v{SERVICE_VERSION}\n{git_version}\n", request)


@router.get("/repos/ls")
async def list_repos(request: Request, ctx: GatewayContext = Depends(get_context)) -> Response:
    """List `category/name.git` repositories, streamed one per line."""
    return text_stream_response((f"{repo}\n" for repo in ctx.repos.iter_repos()), request)


@router.get("/repos/mk/{cat}/{repo}")
async def make_repo(cat: str, repo: str, ctx: GatewayContext = Depends(get_context)) -> PlainTextResponse:
    """
    Create a bare repository, appending `.git` to the name if missing.

    Existing repositories are left untouched. Every outcome is a 200 with a
    descriptive message.
    """
    repo_path = parse_repo(cat, repo)
    if ctx.repos.exists(repo_path):
        return PlainTextResponse(f"Repo '{repo_path}' already exists.")

    try:
        await _in_thread(ctx, ctx.repos.create, repo_path)
    except FileExistsError:
        return PlainTextResponse(f"Repo '{repo_path}' already exists.")
    except (OSError, CommandError) as e:
        ctx.log.error("Repo '%s' could not be created: %s", repo_path, e)
        return PlainTextResponse(f"Repo '{repo_path}' could not be created: {e}.")

    ctx.log.info("Repo Created: %s", repo_path)
    return PlainTextResponse(f"Repo '{repo_path}' was successfully created.")


@router.get("/repos/rm/{cat}/{repo}")
async def archive_repo(cat: str, repo: str, ctx: GatewayContext = Depends(get_context)) -> PlainTextResponse:
    """
    Archive a repository by renaming it with a `-YYYYMMDD-HHMM` suffix.

    Every outcome is a 200 with a descriptive message.
    """
    repo_path = parse_repo(cat, repo)
    if not ctx.repos.exists(repo_path):
        return PlainTextResponse(f"Repo '{repo_path}' does not exist.")

    try:
        archived = await _in_thread(ctx, ctx.repos.archive, repo_path)
    except FileNotFoundError:
        return PlainTextResponse(f"Repo '{repo_path}' does not exist.")
    except OSError as e:
        ctx.log.error("Repo '%s' could not be archived: %s", repo_path, e)
        return PlainTextResponse(f"Repo '{repo_path}' could not be archived: {e}.")

    ctx.log.info("Repo Archived: %s -> %s", repo_path, archived)
    return PlainTextResponse(f"Repo '{repo_path}' was successfully archived to: {archived}.")


# ============================================================================
# INTROSPECTION (JSON)
# ============================================================================


@router.get("/repos/{cat}/{repo}/tags", response_model=list[TagEntry])
async def list_tags(cat: str, repo: str, ctx: GatewayContext = Depends(get_context)):
    """
    List the tags of a repository.

    Returns:
        list[TagEntry]: One `{"name": ...}` object per tag.

    A missing repository, a failing `git tag -l` or a repository without tags
    all answer 404 `{"message": "Not Found"}`.
    """
    repo_path = parse_repo(cat, repo)
    if not ctx.repos.exists(repo_path):
        return _not_found_json()
    try:
        tags = await ctx.git.list_tags(repo_path)
    except CommandError as e:
        ctx.log.warn("git tag -l failed for %s: %s", repo_path, command_error_text(e))
        return _not_found_json()
    if not tags:
        return _not_found_json()
    return [TagEntry(name=tag) for tag in tags]


def _entry_url(base: str, repo_path: RepoPath, ref: str, entry: dict) -> str:
    if entry["type"] == "tree":
        return f"{base}/repos/{repo_path.category}/{repo_path.bare_name}/git/trees/{entry['sha']}"
    return f"{base}/{repo_path.category}/{repo_path.bare_name}/{quote(ref)}/{quote(entry['path'])}"


@router.get("/repos/{cat}/{repo}/git/trees/{ref:path}", response_model=TreeListing)
async def list_tree(
    cat: str,
    repo: str,
    ref: str,
    request: Request,
    recursive: str | None = None,
    ctx: GatewayContext = Depends(get_context),
):
    """
    List the tree of a ref with `git ls-tree --full-tree -l -z [-r]`.

    `-r` is added only for `?recursive=1`. Every entry carries a url: blobs
    point at the raw-file endpoint, subtrees at this endpoint.

    Returns:
        TreeListing: `{"sha", "url", "tree": [...]}`.
    """
    repo_path = parse_repo(cat, repo)
    check_ref(ref)
    if not ctx.repos.exists(repo_path):
        return _not_found_json()

    is_recursive = recursive == "1"
    try:
        tree_sha = await ctx.git.resolve_tree(repo_path, ref)
        entries = await ctx.git.list_tree(repo_path, ref, recursive=is_recursive)
    except CommandError as e:
        ctx.log.warn("git ls-tree failed for %s@%s: %s", repo_path, ref, command_error_text(e))
        return _not_found_json()
    except TreeParseError as e:
        ctx.log.error("Unparseable tree listing for %s@%s: %s", repo_path, ref, e)
        return JSONResponse(status_code=500, content={"message": "Unparseable tree listing"})

    if not entries:
        return _not_found_json()

    base = str(request.base_url).rstrip("/")
    url = f"{base}/repos/{repo_path.category}/{repo_path.bare_name}/git/trees/{quote(ref)}"
    if is_recursive:
        url += "?recursive=1"
    return TreeListing(
        sha=tree_sha,
        url=url,
        tree=[TreeEntry(url=_entry_url(base, repo_path, ref, entry), **entry) for entry in entries],
    )


# ============================================================================
# TARBALLS, RAW FILES & USAGE
# ============================================================================


@content_router.get("/repos/{cat}/{repo}/tarball/{ref}")
@content_router.get("/{cat}/{repo}/tarball/{ref}")
async def tarball_redirect(
    cat: str, repo: str, ref: str, request: Request, ctx: GatewayContext = Depends(get_context)
) -> Response:
    """Redirect to the same tarball with a friendly `<cat>-<repo>-<ref>.tar.gz` name."""
    repo_path = parse_repo(cat, repo)
    check_ref(ref)
    if not ctx.repos.exists(repo_path):
        return not_found_text()
    name = f"{cat}-{repo_path.bare_name}-{ref}.tar.gz"
    return RedirectResponse(url=f"{request.url.path.rstrip('/')}/{quote(name)}", status_code=302)


def _archive_prefix(name: str) -> str:
    if not name or "/" in name or name.startswith("-") or name in (".", ".."):
        raise InvalidParameterError(f"Invalid tarball name: {name!r}")
    for suffix in TARBALL_SUFFIXES:
        if name.endswith(suffix) and len(name) > len(suffix):
            return name[: -len(suffix)]
    return name


@content_router.get("/repos/{cat}/{repo}/tarball/{ref}/{name}")
@content_router.get("/{cat}/{repo}/tarball/{ref}/{name}")
async def tarball(
    cat: str, repo: str, ref: str, name: str, ctx: GatewayContext = Depends(get_context)
) -> Response:
    """
    Stream `git archive --format=tar.gz` of a ref.

    The body is git's own tar.gz and is never sent with a Content-Encoding.
    """
    repo_path = parse_repo(cat, repo)
    check_ref(ref)
    prefix = _archive_prefix(name)
    if not ctx.repos.exists(repo_path):
        return not_found_text()

    try:
        stream = await ctx.git.archive(repo_path, ref, prefix)
    except ProcessError as e:
        ctx.log.warn("git archive failed for %s@%s: %s", repo_path, ref, e.message)
        return not_found_text(e.message)

    return ProcessResponse(
        stream,
        ctx.log,
        media_type="application/gzip",
        headers={"Content-Disposition": f'attachment; filename="{name}"'},
    )


@content_router.get("/{cat}/{repo}/{ref}/{file_path:path}")
async def raw_file(
    cat: str, repo: str, ref: str, file_path: str, request: Request, ctx: GatewayContext = Depends(get_context)
) -> Response:
    """
    Return the contents of `<path>` at `<ref>`.

    The object is checked with `git cat-file -e` first; a missing object
    answers 404 with git's error text.
    """
    repo_path = parse_repo(cat, repo)
    check_ref(ref)
    if not ctx.repos.exists(repo_path):
        return not_found_text()

    try:
        await ctx.git.cat_exists(repo_path, ref, file_path)
    except CommandError as e:
        return not_found_text(command_error_text(e))

    try:
        stream = await ctx.git.show_object(repo_path, ref, file_path)
    except ProcessError as e:
        return not_found_text(e.message)

    return ProcessResponse(stream, ctx.log, compress=wants_gzip(request), media_type=TEXT_PLAIN)


@content_router.get("/{rest:path}")
async def usage(rest: str) -> PlainTextResponse:
    return PlainTextResponse(USAGE)


async def invalid_parameter_handler(request: Request, exc: InvalidParameterError) -> PlainTextResponse:
    return PlainTextResponse(f"Bad Request: {exc}", status_code=400)
