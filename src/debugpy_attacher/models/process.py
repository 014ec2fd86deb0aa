"""Discovered process models."""

from enum import Enum

from pydantic import BaseModel, ConfigDict


class Provenance(str, Enum):
    """Which discovery strategy produced a candidate."""

    SCANNER = "scanner"
    PROBE = "probe"


class CandidateProcess(BaseModel):
    """A process/port pair believed to be attachable.

    Built fresh every discovery cycle and never mutated; ``port`` is the only
    identity carried across cycles.
    """

    model_config = ConfigDict(frozen=True)

    pid: str
    port: str
    owner: str
    is_current_user: bool
    provenance: Provenance = Provenance.SCANNER
    command_hint: str | None = None
