"""Attach state and profile models."""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from debugpy_attacher.models.process import CandidateProcess


class AttachState(str, Enum):
    """Per-port auto-attach state."""

    UNSEEN = "unseen"
    CONNECTING = "connecting"
    ATTACHED = "attached"


class ConnectTarget(BaseModel):
    """Where the debugger connects."""

    model_config = ConfigDict(extra="allow")

    host: str = "localhost"
    port: int


class AttachProfile(BaseModel):
    """Structured attach request handed to the debug launcher.

    Unknown keys from a user-declared launch profile (``pathMappings``,
    ``subProcess``, ...) are kept and passed through.
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    name: str
    type: str = "python"
    request: str = "attach"
    connect: ConnectTarget
    just_my_code: bool = Field(default=False, alias="justMyCode")

    @property
    def port(self) -> str:
        return str(self.connect.port)

    def to_launch_arguments(self) -> dict[str, Any]:
        """Serialize with launch.json key names."""
        return self.model_dump(by_alias=True, exclude_none=True)


class StatusSnapshot(BaseModel):
    """What the status indicator shows."""

    visible: bool = False
    text: str = ""
    ports: list[str] = Field(default_factory=list)
    processes: list[CandidateProcess] = Field(default_factory=list)
    live_monitoring: bool = False
    auto_attach_enabled: bool = False
    auto_attach_running: bool = False
    debug_session_active: bool = False
    attached_ports: list[str] = Field(default_factory=list)
    connecting_ports: list[str] = Field(default_factory=list)
