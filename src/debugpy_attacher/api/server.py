"""Server endpoints - health and info."""

import sys

from fastapi import APIRouter

from debugpy_attacher import __version__
from debugpy_attacher.api.deps import EngineDep
from debugpy_attacher.models.responses import HealthResponse, InfoResponse
from debugpy_attacher.utils.users import current_username

router = APIRouter(tags=["Server"])


@router.get("/health", response_model=HealthResponse)
async def health_check(engine: EngineDep) -> HealthResponse:
    """Check server health status."""
    return HealthResponse(
        status="healthy",
        version=__version__,
        debug_session_active=engine.debug_session_active,
    )


@router.get("/info", response_model=InfoResponse)
async def server_info(engine: EngineDep) -> InfoResponse:
    """Get server information."""
    return InfoResponse(
        name="DebugPy Attacher",
        version=__version__,
        python_version=sys.version.split()[0],
        platform=sys.platform,
        username=current_username(),
        lock_dir=str(engine.lock_manager.lock_dir),
    )
