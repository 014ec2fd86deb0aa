"""API request models."""

from pydantic import BaseModel


class AttachRequest(BaseModel):
    """Request to attach to a discovered process."""

    allow_other_user: bool = False


class DefaultLaunchConfigRequest(BaseModel):
    """Request to add the default attach profile to launch.json."""

    port: int | None = None
    workspace_folder: str | None = None
