"""Process discovery and manual attach endpoints."""

from fastapi import APIRouter

from debugpy_attacher.api.deps import EngineDep
from debugpy_attacher.models.requests import AttachRequest
from debugpy_attacher.models.responses import AttachResponse, ProcessListResponse

router = APIRouter(prefix="/processes", tags=["Processes"])


@router.get("", response_model=ProcessListResponse)
async def list_processes(engine: EngineDep) -> ProcessListResponse:
    """Discover debugpy processes now."""
    await engine.lock_manager.mark_user_activity()
    processes = await engine.discovery.discover(current_user_only=engine.current_user_only)
    return ProcessListResponse(processes=processes, total=len(processes))


@router.post("/{port}/attach", response_model=AttachResponse)
async def attach_to_process(
    port: int,
    engine: EngineDep,
    request: AttachRequest | None = None,
) -> AttachResponse:
    """Attach the debugger to the process listening on a port."""
    allow_other_user = request.allow_other_user if request else False
    profile = await engine.attach(str(port), allow_other_user=allow_other_user)
    return AttachResponse(
        port=profile.port,
        name=profile.name,
        configuration=profile.to_launch_arguments(),
        message=f"Debugger attached to port {profile.port}",
    )
