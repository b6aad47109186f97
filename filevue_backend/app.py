"""Application factory.

``create_app`` wires settings, state, routers, middleware and error
handlers into one FastAPI instance. Nothing here is module-global, so
tests can build as many isolated apps as they like.
"""
from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from .api import (
    AppState,
    Guards,
    create_auth_router,
    create_file_router,
    create_meta_router,
    create_search_router,
    create_share_router,
    create_write_router,
)
from .config import Settings
from .errors import FileVueError, Internal, RateLimited
from .observability import RequestIdMiddleware, configure_logging, get_logger

logger = get_logger(__name__)

MIN_SWEEP_INTERVAL_SECONDS = 30

CONTENT_SECURITY_POLICY = (
    "default-src 'self'; script-src 'self'; style-src 'self' 'unsafe-inline'; "
    "img-src 'self' data:; connect-src 'self'"
)
SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "SAMEORIGIN",
    "Referrer-Policy": "no-referrer",
    "Content-Security-Policy": CONTENT_SECURITY_POLICY,
}

OS_ERROR_STATUS = (
    (FileNotFoundError, 404, "Path not found."),
    (FileExistsError, 409, "Entry already exists."),
    (PermissionError, 403, "Permission denied."),
    (NotADirectoryError, 400, "Path is not a directory."),
    (IsADirectoryError, 400, "Path resolves to a directory."),
)


async def _share_sweep_worker(state: AppState) -> None:
    # Periodically drop expired shares and idle rate-limit keys; lookups
    # also evict lazily.
    interval = max(MIN_SWEEP_INTERVAL_SECONDS, state.settings.share_sweep_interval_seconds)
    while True:
        await asyncio.sleep(interval)
        try:
            state.shares.sweep()
            state.api_limiter.sweep()
            state.login_limiter.sweep()
        except Exception:
            logger.exception("share_sweep_failed")


def _install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(FileVueError)
    async def _filevue_error(request: Request, exc: FileVueError):
        headers = None
        if isinstance(exc, RateLimited):
            headers = {"Retry-After": str(max(1, int(exc.retry_after + 0.999)))}
        if exc.status_code >= 500:
            logger.error("request_failed", reason=exc.reason, path=request.url.path)
        return JSONResponse(exc.to_payload(), status_code=exc.status_code, headers=headers)

    @app.exception_handler(OSError)
    async def _os_error(request: Request, exc: OSError):
        for error_type, status_code, message in OS_ERROR_STATUS:
            if isinstance(exc, error_type):
                return JSONResponse({"error": message}, status_code=status_code)
        logger.error("filesystem_error", path=request.url.path, error=str(exc))
        return JSONResponse(Internal().to_payload(), status_code=Internal.status_code)

    @app.exception_handler(Exception)
    async def _unexpected(request: Request, exc: Exception):
        logger.error("unhandled_exception", path=request.url.path, exc_info=exc)
        return JSONResponse(Internal().to_payload(), status_code=Internal.status_code)


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or Settings.from_env()
    configure_logging(level=settings.log_level, json_output=settings.log_format == "json")

    settings.root_directory.mkdir(parents=True, exist_ok=True)
    state = AppState.from_settings(settings)
    guards = Guards(state)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        state.shares.sweep()
        task = asyncio.create_task(_share_sweep_worker(state))
        logger.info(
            "server_started",
            root_directory=str(state.sandbox.root),
            read_only=settings.read_only,
            auth_required=state.sessions.auth_required,
        )
        try:
            yield
        finally:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

    app = FastAPI(title="FileVue", lifespan=lifespan)
    app.state.filevue = state

    @app.middleware("http")
    async def _security_headers(request: Request, call_next):
        response = await call_next(request)
        for name, value in SECURITY_HEADERS.items():
            response.headers.setdefault(name, value)
        if request.url.path.startswith("/api/"):
            response.headers.setdefault("Cache-Control", "no-store")
        return response

    # Credentials require a concrete origin; without one configured, any
    # requesting origin is reflected back.
    if settings.cors_allowed_origin:
        cors = {"allow_origins": [settings.cors_allowed_origin]}
    else:
        cors = {"allow_origin_regex": ".*"}
    app.add_middleware(
        CORSMiddleware,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID"],
        **cors,
    )
    app.add_middleware(RequestIdMiddleware)

    _install_error_handlers(app)

    api = [Depends(guards.rate_limit)]
    app.include_router(create_auth_router(state, guards), prefix="/api", dependencies=api)
    app.include_router(create_meta_router(state, guards), prefix="/api", dependencies=api)
    app.include_router(create_file_router(state, guards, "/file"), prefix="/api", dependencies=api)
    app.include_router(create_file_router(state, guards, "/files"), prefix="/api", dependencies=api)
    app.include_router(create_write_router(state, guards), prefix="/api", dependencies=api)
    app.include_router(create_search_router(state, guards), prefix="/api", dependencies=api)
    app.include_router(create_share_router(state, guards), prefix="/api", dependencies=api)

    # Static client build. Define API routes above, then mount static at '/'.
    if settings.client_build_dir.is_dir():
        app.mount("/", StaticFiles(directory=str(settings.client_build_dir), html=True), name="static")

    return app
