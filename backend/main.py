"""Entry point for the git repository gateway FastAPI application."""

import os
import shutil

# GitPython looks for git when it is first imported; resolve the executable
# before any module importing git is loaded.
git_path = os.environ.get("GIT_PYTHON_GIT_EXECUTABLE") or shutil.which("git")
if git_path:
    os.environ["GIT_PYTHON_GIT_EXECUTABLE"] = git_path
    import git
    git.refresh(path=git_path)
else:
    # Start anyway; /status reports the missing binary
    os.environ.setdefault("GIT_PYTHON_REFRESH", "quiet")

from contextlib import asynccontextmanager

from fastapi import FastAPI

from api import git_http
from api.responses import InvalidParameterError
from api.routes import content_router, invalid_parameter_handler
from api.routes import router as repos_router
from services.activity_log import ActivityLogger
from services.context import GatewayContext
from utils.settings import SERVICE_NAME, SERVICE_VERSION, Settings


def create_app(settings: Settings | None = None, log: ActivityLogger | None = None) -> FastAPI:
    """
    Build the gateway application.

    Args:
        settings: Resolved settings. Loaded from env/config file if None.
        log: Activity logger to use instead of one writing to settings.log_file.

    Returns:
        FastAPI: The configured application. Its GatewayContext is available
            as `app.state.context`.
    """
    settings = settings or Settings.load()
    context = GatewayContext.from_settings(settings, log=log)

    if git_path is None:
        context.log.warn("git executable not found in PATH")
    context.log.debug("Logger started.")

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        context.log.info("%s is listening on port: %s", SERVICE_NAME, settings.port)
        context.log.info("Repos Dir is: %s", settings.repo_dir.resolve())
        yield
        context.close()

    app = FastAPI(title=SERVICE_NAME, version=SERVICE_VERSION, lifespan=lifespan)
    app.state.context = context
    app.add_exception_handler(InvalidParameterError, invalid_parameter_handler)

    # Order matters: the raw-file route in content_router would also match
    # `*.git` paths, so the smart-HTTP router is mounted before it.
    app.include_router(repos_router)
    app.include_router(git_http.router)
    app.include_router(content_router)
    return app


def main() -> None:
    import uvicorn

    settings = Settings.load()
    uvicorn.run(create_app(settings), host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
