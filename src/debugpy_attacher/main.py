"""Main application entry point."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from debugpy_attacher import __version__
from debugpy_attacher.api.errors import register_error_handlers
from debugpy_attacher.api.router import api_router
from debugpy_attacher.config import settings
from debugpy_attacher.core.factory import create_engine

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Build the engine, start monitoring, and detach cleanly on exit."""
    engine = await create_engine()
    prefs = engine.preferences
    logger.info(
        f"debugpy-attacher v{__version__} watching for debugpy agents "
        f"(auto_attach={prefs.auto_attach}, live={prefs.live_monitoring}, "
        f"hide_other_users={prefs.hide_processes_from_other_users})"
    )
    locks = engine.lock_manager
    logger.info(f"Port locks in {locks.lock_dir} as {locks.owner_token}")
    if not settings.workspace_folders:
        logger.info("No workspace folders configured; launch.json port hints disabled")

    engine.start()
    app.state.engine = engine

    yield

    sessions = len(engine.launcher.active_sessions)
    logger.info(f"Detaching from {sessions} debug session(s) and releasing port locks")
    await engine.launcher.stop_all()
    await engine.dispose()
    logger.info(f"Released locks held by instance {locks.instance_id}")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="DebugPy Attacher",
        description="Discovers debugpy processes and auto-attaches a debugger",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )

    app.include_router(api_router)
    register_error_handlers(app)

    return app


app = create_app()


def main() -> None:
    """Run the server."""
    uvicorn.run(
        "debugpy_attacher.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
