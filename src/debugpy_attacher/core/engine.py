"""Status monitoring and the auto-attach state machine."""

import asyncio
import contextlib
import logging
from collections.abc import Coroutine
from typing import Any

from debugpy_attacher.adapters.base import DebugLauncher, DebugSessionInfo
from debugpy_attacher.config import Settings, settings
from debugpy_attacher.core.exceptions import (
    AttachConnectionRefusedError,
    AttachError,
    AttachTimeoutError,
    OtherUserProcessError,
    PortLockedError,
    ProcessNotFoundError,
)
from debugpy_attacher.core.locks import PortLockManager
from debugpy_attacher.core.profiles import build_attach_profile
from debugpy_attacher.discovery.coordinator import DiscoveryCoordinator
from debugpy_attacher.models.attach import AttachProfile, AttachState, StatusSnapshot
from debugpy_attacher.models.process import CandidateProcess
from debugpy_attacher.persistence.launch_config import LaunchConfigReader
from debugpy_attacher.persistence.preferences import MonitorPreferences, PreferenceStore

logger = logging.getLogger(__name__)


def failure_class(error: BaseException) -> str:
    """Classify an attach failure for diagnostics."""
    if isinstance(error, (AttachConnectionRefusedError, ConnectionRefusedError)):
        return "connection-refused"
    if isinstance(error, (AttachTimeoutError, asyncio.TimeoutError, TimeoutError)):
        return "timeout"
    message = str(error)
    if "ECONNREFUSED" in message:
        return "connection-refused"
    if "timeout" in message.lower() or "ETIMEDOUT" in message:
        return "timeout"
    return "other"


class AutoAttachEngine:
    """Polls for debugpy processes and attaches to new ones.

    Two timers run per instance: the status refresh (while live monitoring
    is enabled) and the auto-attach loop (while auto-attach is enabled and
    no debug session is active). Each port moves unseen -> connecting ->
    attached; at most one port is attached per tick.
    """

    def __init__(
        self,
        discovery: DiscoveryCoordinator,
        lock_manager: PortLockManager,
        launcher: DebugLauncher,
        launch_config: LaunchConfigReader | None = None,
        preferences: MonitorPreferences | None = None,
        preference_store: PreferenceStore | None = None,
        config: Settings | None = None,
    ):
        self.config = config or settings
        self.discovery = discovery
        self.lock_manager = lock_manager
        self.launcher = launcher
        self.launch_config = launch_config
        self.preferences = preferences or MonitorPreferences.from_settings(self.config)
        self.preference_store = preference_store

        self.known_ports: set[str] = set()
        self.attached_ports: set[str] = set()
        self.connecting_ports: set[str] = set()
        self.debug_session_active = False
        self.status = StatusSnapshot()

        self._auto_attaching = False
        self._status_task: asyncio.Task[None] | None = None
        self._auto_attach_task: asyncio.Task[None] | None = None
        self._restart_task: asyncio.Task[None] | None = None
        self._background: set[asyncio.Task[Any]] = set()

        launcher.on_session_start(self.on_debug_session_start)
        launcher.on_session_end(self.on_debug_session_end)

    # State

    @property
    def auto_attach_running(self) -> bool:
        return self._auto_attaching

    def attach_state(self, port: str) -> AttachState:
        if port in self.attached_ports:
            return AttachState.ATTACHED
        if port in self.connecting_ports:
            return AttachState.CONNECTING
        return AttachState.UNSEEN

    @property
    def current_user_only(self) -> bool:
        return self.preferences.hide_processes_from_other_users

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task[Any]:
        task = asyncio.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    # Lifecycle

    def start(self) -> None:
        """Start monitoring according to the current preferences."""
        self._spawn(self.lock_manager.mark_user_activity())
        self.debug_session_active = self.launcher.has_active_session

        if self._status_task is None or self._status_task.done():
            self._status_task = asyncio.create_task(
                self._status_loop(repeat=self.preferences.live_monitoring)
            )

        if self.preferences.auto_attach and not self.debug_session_active:
            self.start_auto_attach()

        logger.info(
            f"Monitoring started (live={self.preferences.live_monitoring}, "
            f"auto_attach={self.preferences.auto_attach})"
        )

    def stop(self) -> None:
        """Stop both timers. In-flight attach attempts run to completion."""
        if self._status_task:
            self._status_task.cancel()
            self._status_task = None
        self.stop_auto_attach()

    def restart(self) -> None:
        self.stop()
        self.known_ports.clear()
        self.attached_ports.clear()
        self.connecting_ports.clear()
        self.start()

    async def dispose(self) -> None:
        """Stop timers, abandon in-flight work and release held locks."""
        self.stop()
        tasks = list(self._background)
        for task in tasks:
            task.cancel()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError, Exception):
                await task
        await self.lock_manager.cleanup()
        logger.info("Auto-attach engine disposed")

    # Status refresh

    async def _status_loop(self, repeat: bool) -> None:
        while True:
            await self.refresh_status()
            if not repeat:
                return
            await asyncio.sleep(self.config.status_refresh_seconds)

    async def refresh_status(self) -> StatusSnapshot:
        """Run discovery and update the status indicator."""
        try:
            processes = await self.discovery.discover(current_user_only=self.current_user_only)
        except Exception as e:
            logger.debug(f"Status refresh failed: {e}")
            processes = []

        ports = [p.port for p in processes]
        self.status = StatusSnapshot(
            visible=bool(processes),
            text=f"Debugpy: {', '.join(ports)}" if processes else "",
            ports=ports,
            processes=processes,
        )
        self.known_ports = set(ports)

        if processes and self.preferences.auto_attach and not self._auto_attaching:
            self.start_auto_attach()

        return self.snapshot()

    def snapshot(self) -> StatusSnapshot:
        """Current status merged with live engine state."""
        return self.status.model_copy(
            update={
                "live_monitoring": self.preferences.live_monitoring,
                "auto_attach_enabled": self.preferences.auto_attach,
                "auto_attach_running": self._auto_attaching,
                "debug_session_active": self.debug_session_active,
                "attached_ports": sorted(self.attached_ports),
                "connecting_ports": sorted(self.connecting_ports),
            }
        )

    # Auto-attach timer

    def start_auto_attach(self) -> None:
        if self._auto_attaching or self.debug_session_active:
            return

        self._auto_attaching = True
        self._auto_attach_task = asyncio.create_task(self._auto_attach_loop())
        logger.debug("Auto-attach started")

    def stop_auto_attach(self) -> None:
        if self._auto_attach_task:
            self._auto_attach_task.cancel()
            self._auto_attach_task = None
        if self._restart_task:
            self._restart_task.cancel()
            self._restart_task = None
        if self._auto_attaching:
            logger.debug("Auto-attach stopped")
        self._auto_attaching = False

    async def _auto_attach_loop(self) -> None:
        while self._auto_attaching:
            if self.debug_session_active:
                self.stop_auto_attach()
                return
            # A tick outlives a stop() of this loop
            await asyncio.shield(self._spawn(self.tick()))
            await asyncio.sleep(self.config.auto_attach_retry_interval_seconds)

    async def tick(self) -> str | None:
        """Run one auto-attach cycle.

        Returns:
            The port attached during this tick, if any
        """
        if self.debug_session_active or self.launcher.has_active_session:
            logger.debug("Skipping auto-attach - debug session is active")
            return None

        try:
            processes = await self.discovery.discover(current_user_only=self.current_user_only)
        except Exception as e:
            logger.debug(f"Auto-attach process discovery error: {e}")
            return None

        current_ports = {p.port for p in processes}
        for port in list(self.attached_ports):
            if port not in current_ports:
                self.attached_ports.discard(port)
                logger.debug(f"Removed stale attached port: {port}")

        for process in processes:
            # Other users' processes are only ever attached on request
            if not process.is_current_user:
                continue
            if process.port in self.attached_ports:
                continue
            if process.port in self.connecting_ports:
                logger.debug(f"Skipping port {process.port} - connection already in progress")
                continue
            if self.debug_session_active:
                logger.debug("Debug session detected during auto-attach, stopping")
                return None

            if await self._silent_attach(process):
                logger.info(f"Successfully auto-attached to port {process.port}")
                # Resumed by session end or the next status refresh
                self.stop_auto_attach()
                return process.port

        return None

    async def _silent_attach(self, process: CandidateProcess) -> bool:
        port = process.port
        if not await self.lock_manager.try_acquire(port):
            return False

        if self.debug_session_active or self.launcher.has_active_session:
            await self.lock_manager.release(port)
            return False

        self.connecting_ports.add(port)
        try:
            profile = build_attach_profile(port, await self._preferred_profile(), auto=True)
            logger.debug(f"Attempting to attach to port {port}")
            started = await self.launcher.start_debugging(profile)
        except Exception as e:
            kind = failure_class(e)
            if kind == "connection-refused":
                logger.debug(f"Port {port} connection refused - service may not be ready yet")
            elif kind == "timeout":
                logger.debug(f"Port {port} connection timeout - service may be starting")
            else:
                logger.debug(f"Silent attach attempt failed for port {port}: {e}")
            await self.lock_manager.release(port)
            return False
        finally:
            self.connecting_ports.discard(port)

        if not started:
            logger.debug(f"Failed to attach to port {port} - debug session not started")
            await self.lock_manager.release(port)
            return False

        self.attached_ports.add(port)
        self._release_later(port, self.config.auto_attach_release_delay_seconds)
        return True

    def _release_later(self, port: str, delay: float) -> None:
        async def release() -> None:
            await asyncio.sleep(delay)
            await self.lock_manager.release(port)

        self._spawn(release())

    async def _preferred_profile(self) -> dict[str, Any] | None:
        if self.launch_config is None:
            return None
        try:
            return await self.launch_config.preferred_profile()
        except Exception as e:
            logger.debug(f"Could not read preferred launch profile: {e}")
            return None

    # Manual attach

    async def attach(self, port: str, allow_other_user: bool = False) -> AttachProfile:
        """Attach to the discovered process listening on ``port``.

        Raises:
            ProcessNotFoundError: No discovered process uses the port
            OtherUserProcessError: Process owned by another user, not confirmed
            PortLockedError: Another instance is attaching to the port
            AttachError: The debug session did not start
        """
        await self.lock_manager.mark_user_activity()
        processes = await self.discovery.discover(current_user_only=self.current_user_only)
        process = next((p for p in processes if p.port == port), None)
        if process is None:
            raise ProcessNotFoundError(port)
        return await self.attach_process(process, allow_other_user=allow_other_user)

    async def attach_process(
        self,
        process: CandidateProcess,
        allow_other_user: bool = False,
    ) -> AttachProfile:
        port = process.port
        if not process.is_current_user and not allow_other_user:
            raise OtherUserProcessError(port, process.owner)

        if not await self.lock_manager.try_acquire(port):
            raise PortLockedError(port)

        try:
            profile = build_attach_profile(port, await self._preferred_profile(), auto=False)
            started = await self.launcher.start_debugging(profile)
        except AttachError:
            await self.lock_manager.release(port)
            raise
        except Exception as e:
            await self.lock_manager.release(port)
            raise AttachError(port, str(e)) from e

        if not started:
            await self.lock_manager.release(port)
            raise AttachError(port, "Debug session failed to start")

        self.attached_ports.add(port)
        self._release_later(port, self.config.manual_attach_release_delay_seconds)
        logger.info(f"Debugger attached to port {port} using '{profile.name}'")
        return profile

    # Debug session notifications

    def on_debug_session_start(self, session: DebugSessionInfo) -> None:
        self.debug_session_active = True
        if self._auto_attaching or self._restart_task:
            self.stop_auto_attach()
        logger.debug(f"Debug session started: {session.name} - auto-attach paused")

    def on_debug_session_end(self, session: DebugSessionInfo) -> None:
        self.debug_session_active = False

        if session.port:
            self.attached_ports.discard(session.port)
            self.connecting_ports.discard(session.port)
            self.known_ports.discard(session.port)

        if self.preferences.auto_attach and not self._auto_attaching:
            if self._restart_task:
                self._restart_task.cancel()
            self._restart_task = asyncio.create_task(
                self._restart_after(self.config.session_end_cooldown_seconds)
            )
        logger.debug(f"Debug session ended: {session.name}")

    async def _restart_after(self, delay: float) -> None:
        await asyncio.sleep(delay)
        self._restart_task = None
        logger.debug("Restarting auto-attach after debug session ended")
        self.start_auto_attach()

    # Toggles

    async def set_preference(self, name: str, enabled: bool) -> MonitorPreferences:
        """Change a monitoring toggle, persist it and restart monitoring."""
        await self.lock_manager.mark_user_activity()
        self.preferences = self.preferences.model_copy(update={name: enabled})
        if self.preference_store:
            try:
                await self.preference_store.save(self.preferences)
            except Exception as e:
                logger.warning(f"Failed to save preferences: {e}")
        self.restart()
        return self.preferences

    async def toggle(self, name: str) -> bool:
        """Flip a monitoring toggle and return its new value."""
        if name not in MonitorPreferences.model_fields:
            raise ValueError(f"Unknown setting '{name}'")
        new_value = not getattr(self.preferences, name)
        await self.set_preference(name, new_value)
        return new_value
