"""MCP Server for debugpy process discovery and attach.

Exposes the attacher as MCP tools so an AI host can list debugpy
processes, attach to one and control monitoring.

Usage:
    # Run as stdio server (for AI host integration)
    python -m debugpy_attacher.mcp_server

    # Or via entry point
    debugpy-attacher-mcp
"""

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

from mcp.server.fastmcp import FastMCP

from debugpy_attacher.core.engine import AutoAttachEngine
from debugpy_attacher.core.exceptions import AttacherError
from debugpy_attacher.core.factory import create_engine

logger = logging.getLogger(__name__)

# Global engine (initialized in lifespan)
_engine: AutoAttachEngine | None = None

# Tool argument -> preference field
TOGGLE_NAMES = {
    "live": "live_monitoring",
    "auto_attach": "auto_attach",
    "hide_other_users": "hide_processes_from_other_users",
}


@asynccontextmanager
async def lifespan(app: FastMCP):  # type: ignore[no-untyped-def]
    """Manage the lifecycle of the auto-attach engine."""
    global _engine
    _engine = await create_engine()
    _engine.start()
    logger.info("MCP Attacher Server started")
    try:
        yield {"engine": _engine}
    finally:
        await _engine.launcher.stop_all()
        await _engine.dispose()
        _engine = None
        logger.info("MCP Attacher Server stopped")


# Create the MCP server
mcp = FastMCP(
    name="debugpy-attacher",
    instructions="""Finds Python processes listening for a debugger (debugpy) and attaches to them. Use attacher_list_processes to see ports, attacher_attach to connect, attacher_toggle to control live monitoring and auto-attach.""",
    lifespan=lifespan,
)


def _get_engine() -> AutoAttachEngine:
    """Get the engine, raising if not initialized."""
    if _engine is None:
        raise RuntimeError("Auto-attach engine not initialized")
    return _engine


def _error(e: AttacherError) -> dict[str, Any]:
    return {"error": e.message, "code": e.code, "details": e.details}


@mcp.tool()
async def attacher_list_processes() -> dict[str, Any]:
    """List debugpy processes that are listening for a debugger."""
    engine = _get_engine()
    await engine.lock_manager.mark_user_activity()
    processes = await engine.discovery.discover(current_user_only=engine.current_user_only)
    return {
        "processes": [
            {
                "port": p.port,
                "pid": p.pid,
                "owner": p.owner,
                "is_current_user": p.is_current_user,
                "state": engine.attach_state(p.port).value,
            }
            for p in processes
        ],
        "total": len(processes),
    }


@mcp.tool()
async def attacher_attach(port: int, allow_other_user: bool = False) -> dict[str, Any]:
    """Attach the debugger to the debugpy process on a port.

    Args:
        port: Port the debugpy process listens on
        allow_other_user: Confirm attaching to another user's process
    """
    engine = _get_engine()
    try:
        profile = await engine.attach(str(port), allow_other_user=allow_other_user)
    except AttacherError as e:
        return _error(e)
    return {
        "port": profile.port,
        "name": profile.name,
        "configuration": profile.to_launch_arguments(),
        "message": f"Debugger attached to port {profile.port}",
    }


@mcp.tool()
async def attacher_status() -> dict[str, Any]:
    """Current status: visible ports, attach states and toggles."""
    engine = _get_engine()
    return engine.snapshot().model_dump(mode="json")


@mcp.tool()
async def attacher_toggle(setting: str) -> dict[str, Any]:
    """Flip a monitoring toggle.

    Args:
        setting: One of "live", "auto_attach", "hide_other_users"
    """
    engine = _get_engine()
    field = TOGGLE_NAMES.get(setting)
    if field is None:
        return {
            "error": f"Unknown setting '{setting}', expected one of {sorted(TOGGLE_NAMES)}",
            "code": "INVALID_SETTING",
        }
    enabled = await engine.toggle(field)
    return {"setting": field, "enabled": enabled}


@mcp.tool()
async def attacher_add_default_launch_config(
    port: int | None = None,
    workspace_folder: str | None = None,
) -> dict[str, Any]:
    """Add the default attach profile to .vscode/launch.json.

    Args:
        port: Port for the profile (default from settings)
        workspace_folder: Folder to update (default: first workspace folder)
    """
    engine = _get_engine()
    if engine.launch_config is None:
        return {"error": "No workspace folder is open", "code": "NO_WORKSPACE"}
    try:
        path, added = await engine.launch_config.ensure_default_profile(
            port or engine.config.default_port,
            folder=Path(workspace_folder) if workspace_folder else None,
        )
    except AttacherError as e:
        return _error(e)
    return {"path": str(path), "added": added}


# =============================================================================
# Main Entry Point
# =============================================================================


def main():
    """Run the MCP server via stdio transport."""
    import sys

    # Configure logging to stderr (stdout is for MCP protocol)
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )

    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
