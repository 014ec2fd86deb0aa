"""Port lock models."""

from datetime import datetime, timezone

from pydantic import BaseModel, Field


class PortLockRecord(BaseModel):
    """Content of a lock entry: who claimed a port and when."""

    port: str
    owner_token: str = Field(description="<hostname>:<pid>:<instance id> of the holder")
    instance_id: str
    acquired_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
