"""Status and monitoring toggle endpoints."""

from pathlib import Path

from fastapi import APIRouter, status

from debugpy_attacher.api.deps import EngineDep
from debugpy_attacher.models.attach import StatusSnapshot
from debugpy_attacher.models.requests import DefaultLaunchConfigRequest
from debugpy_attacher.models.responses import LaunchConfigResponse, ToggleResponse
from debugpy_attacher.persistence.launch_config import LaunchConfigReader

router = APIRouter(tags=["Monitoring"])

# URL name -> preference field, message label
TOGGLES = {
    "live": ("live_monitoring", "Debugpy live monitoring"),
    "auto-attach": ("auto_attach", "Debugpy auto-attach"),
    "hide-other-users": ("hide_processes_from_other_users", "Hiding processes from other users"),
}


@router.get("/status", response_model=StatusSnapshot)
async def get_status(engine: EngineDep) -> StatusSnapshot:
    """Current status indicator state."""
    return engine.snapshot()


@router.post("/activity", status_code=status.HTTP_204_NO_CONTENT)
async def mark_activity(engine: EngineDep) -> None:
    """Report user activity (keeps this instance's port locks alive)."""
    await engine.lock_manager.mark_user_activity()


@router.post("/monitoring/{name}/toggle", response_model=ToggleResponse)
async def toggle_setting(name: str, engine: EngineDep) -> ToggleResponse:
    """Flip a monitoring toggle."""
    if name not in TOGGLES:
        raise ValueError(f"Unknown setting '{name}', expected one of {sorted(TOGGLES)}")
    field, label = TOGGLES[name]
    enabled = await engine.toggle(field)
    return ToggleResponse(
        setting=field,
        enabled=enabled,
        message=f"{label} {'enabled' if enabled else 'disabled'}",
    )


@router.post("/launch-config/default", response_model=LaunchConfigResponse)
async def add_default_launch_config(
    engine: EngineDep,
    request: DefaultLaunchConfigRequest | None = None,
) -> LaunchConfigResponse:
    """Add the default attacher profile to launch.json."""
    request = request or DefaultLaunchConfigRequest()
    reader = engine.launch_config or LaunchConfigReader()
    port = request.port or engine.config.default_port
    folder = Path(request.workspace_folder) if request.workspace_folder else None

    path, added = await reader.ensure_default_profile(port, folder=folder)
    message = (
        f"Added default debugpy-attacher configuration to launch.json (port {port})"
        if added
        else "Default debugpy-attacher configuration already exists in launch.json"
    )
    return LaunchConfigResponse(path=str(path), added=added, message=message)
