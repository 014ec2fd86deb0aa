"""Abstract base class for debug launchers.

A launcher starts a debug session from an attach profile and reports when
sessions start and end. The attacher core only depends on this interface;
which debugger actually connects is up to the implementation.
"""

import logging
import uuid
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from debugpy_attacher.models.attach import AttachProfile

logger = logging.getLogger(__name__)


@dataclass
class DebugSessionInfo:
    """A debug session started by a launcher."""

    name: str
    port: str | None
    configuration: dict[str, Any] = field(default_factory=dict)
    id: str = field(default_factory=lambda: f"dbg_{uuid.uuid4().hex[:8]}")


SessionListener = Callable[[DebugSessionInfo], None]


class DebugLauncher(ABC):
    """Starts debug sessions and notifies listeners about their lifetime."""

    def __init__(self) -> None:
        self._start_listeners: list[SessionListener] = []
        self._end_listeners: list[SessionListener] = []
        self._sessions: dict[str, DebugSessionInfo] = {}

    def on_session_start(self, listener: SessionListener) -> None:
        self._start_listeners.append(listener)

    def on_session_end(self, listener: SessionListener) -> None:
        self._end_listeners.append(listener)

    @property
    def active_sessions(self) -> list[DebugSessionInfo]:
        return list(self._sessions.values())

    @property
    def has_active_session(self) -> bool:
        return bool(self._sessions)

    @abstractmethod
    async def start_debugging(self, profile: AttachProfile) -> bool:
        """Start a session for ``profile``.

        Returns:
            True if the session started, False if it was declined

        Raises:
            AttachError: If connecting to the debug agent failed
        """
        ...

    async def stop_all(self) -> None:
        """End every active session."""
        for session in self.active_sessions:
            self._emit_end(session)

    def _emit_start(self, session: DebugSessionInfo) -> None:
        self._sessions[session.id] = session
        for listener in list(self._start_listeners):
            try:
                listener(session)
            except Exception as e:
                logger.error(f"Session start listener error: {e}")

    def _emit_end(self, session: DebugSessionInfo) -> None:
        if self._sessions.pop(session.id, None) is None:
            return
        for listener in list(self._end_listeners):
            try:
                listener(session)
            except Exception as e:
                logger.error(f"Session end listener error: {e}")
