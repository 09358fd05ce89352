"""CSPP FastAPI application entry point."""

from __future__ import annotations

import asyncio
import uuid
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from cspp import __version__
from cspp.config import Settings, get_settings
from cspp.errors import CsppError
from cspp.ingest import DirectoryWatcher, IngestionEngine
from cspp.ingest.fileops import setup_directory
from cspp.services.api_key import CredentialStore
from cspp.services.http import http_client_manager
from cspp.services.slack import SlackDispatcher

logger = structlog.get_logger()


async def start_ingestion(app: FastAPI) -> None:
    """Create the engine and watcher for the uploads directory."""
    settings: Settings = app.state.settings

    engine = IngestionEngine(
        settings.paths,
        app.state.credential_store,
        app.state.dispatcher,
        channel=settings.slack.channel,
        config=settings.ingest,
    )
    await engine.start()

    watcher = DirectoryWatcher(settings.paths.uploads_dir, engine)
    watcher.start()
    if settings.ingest.scan_on_startup:
        await watcher.scan_existing()

    app.state.engine = engine
    app.state.watcher = watcher
    app.state.watcher_task = asyncio.create_task(watcher.run())


async def stop_ingestion(app: FastAPI) -> None:
    """Stop watching, then let the engine finish the file in hand."""
    watcher: DirectoryWatcher | None = getattr(app.state, "watcher", None)
    if watcher is not None:
        await watcher.stop()
        task = getattr(app.state, "watcher_task", None)
        if task is not None:
            await task

    engine: IngestionEngine | None = getattr(app.state, "engine", None)
    if engine is not None:
        await engine.stop()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    # Startup
    settings: Settings = app.state.settings
    logger.info("cspp.startup", version=__version__)

    for directory in settings.paths.all_dirs():
        setup_directory(directory)

    await http_client_manager.startup()
    await start_ingestion(app)

    yield

    # Shutdown
    logger.info("cspp.shutdown")
    await stop_ingestion(app)
    await http_client_manager.shutdown()


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure FastAPI application."""
    settings = settings or get_settings()

    app = FastAPI(
        title="CSPP",
        description="Credential-gated image posting to Slack",
        version=__version__,
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.credential_store = CredentialStore(settings.paths.credentials_dir)
    app.state.dispatcher = SlackDispatcher(
        settings.slack,
        base_url=settings.public_base_url(),
    )

    # Request ID middleware
    @app.middleware("http")
    async def request_id_middleware(request: Request, call_next):
        """Add request ID to all requests."""
        request_id = request.headers.get("X-Request-Id") or str(uuid.uuid4())
        request.state.request_id = request_id
        response = await call_next(request)
        response.headers["X-Request-Id"] = request_id
        return response

    # Error handler
    @app.exception_handler(CsppError)
    async def cspp_error_handler(request: Request, exc: CsppError):
        """Handle CSPP errors with consistent format."""
        request_id = getattr(request.state, "request_id", None)
        return JSONResponse(
            status_code=exc.status_code,
            content=exc.to_dict(request_id),
        )

    # Health check
    @app.get("/health")
    async def health() -> dict[str, str]:
        """Health check endpoint."""
        return {"status": "ok"}

    from cspp.api import router as api_router

    app.include_router(api_router)

    return app
