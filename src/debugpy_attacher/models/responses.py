"""API response models."""

from typing import Any

from pydantic import BaseModel

from debugpy_attacher.models.process import CandidateProcess


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str
    debug_session_active: bool


class InfoResponse(BaseModel):
    """Server information response."""

    name: str
    version: str
    python_version: str
    platform: str
    username: str
    lock_dir: str


class ProcessListResponse(BaseModel):
    """Discovered processes."""

    processes: list[CandidateProcess]
    total: int


class AttachResponse(BaseModel):
    """Result of a manual attach."""

    port: str
    name: str
    configuration: dict[str, Any]
    message: str


class ToggleResponse(BaseModel):
    """New state of a monitoring toggle."""

    setting: str
    enabled: bool
    message: str


class LaunchConfigResponse(BaseModel):
    """Result of adding the default launch profile."""

    path: str
    added: bool
    message: str
