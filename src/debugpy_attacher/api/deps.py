"""API dependencies."""

from typing import Annotated

from fastapi import Depends, Request

from debugpy_attacher.core.engine import AutoAttachEngine


async def get_engine(request: Request) -> AutoAttachEngine:
    """Get the auto-attach engine from app state."""
    engine: AutoAttachEngine = request.app.state.engine
    return engine


EngineDep = Annotated[AutoAttachEngine, Depends(get_engine)]
