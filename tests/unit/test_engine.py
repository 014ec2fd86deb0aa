"""Tests for the auto-attach engine."""

import asyncio
import json

import pytest

from conftest import FakeDiscovery, FakeLauncher, make_process
from debugpy_attacher.core.engine import AutoAttachEngine, failure_class
from debugpy_attacher.core.exceptions import (
    AttachConnectionRefusedError,
    AttachError,
    AttachTimeoutError,
    OtherUserProcessError,
    PortLockedError,
    ProcessNotFoundError,
)
from debugpy_attacher.core.locks import PortLockManager
from debugpy_attacher.models.attach import AttachState


class TestFailureClass:
    """Tests for failure classification."""

    def test_connection_refused(self) -> None:
        assert failure_class(AttachConnectionRefusedError("5678")) == "connection-refused"
        assert failure_class(OSError("connect ECONNREFUSED 127.0.0.1:5678")) == "connection-refused"

    def test_timeout(self) -> None:
        assert failure_class(AttachTimeoutError("5678", 5.0)) == "timeout"
        assert failure_class(asyncio.TimeoutError()) == "timeout"

    def test_other(self) -> None:
        assert failure_class(RuntimeError("boom")) == "other"


class TestTick:
    """Tests for one auto-attach cycle."""

    @pytest.mark.asyncio
    async def test_one_attach_per_tick(
        self, engine: AutoAttachEngine, launcher: FakeLauncher
    ) -> None:
        """Test that only the first new port is attached in a tick."""
        attached = await engine.tick()

        assert attached == "5678"
        assert [p.port for p in launcher.profiles] == ["5678"]
        assert engine.attach_state("5678") == AttachState.ATTACHED
        assert engine.attach_state("5679") == AttachState.UNSEEN

    @pytest.mark.asyncio
    async def test_auto_profile(self, engine: AutoAttachEngine, launcher: FakeLauncher) -> None:
        """Test the generated auto-attach profile."""
        await engine.tick()

        arguments = launcher.profiles[0].to_launch_arguments()
        assert arguments["name"] == "Auto-attach to 5678"
        assert arguments["connect"] == {"host": "localhost", "port": 5678}
        assert arguments["justMyCode"] is False
        assert arguments["timeout"] == 5000

    @pytest.mark.asyncio
    async def test_next_tick_attaches_next_port(
        self, engine: AutoAttachEngine, launcher: FakeLauncher
    ) -> None:
        """Test that the remaining port is picked up once the session is gone."""
        launcher.emit_start = False

        assert await engine.tick() == "5678"
        assert await engine.tick() == "5679"
        assert await engine.tick() is None
        assert len(launcher.profiles) == 2

    @pytest.mark.asyncio
    async def test_other_user_ports_never_auto_attached(
        self, engine: AutoAttachEngine, discovery: FakeDiscovery, launcher: FakeLauncher
    ) -> None:
        """Test that showing other users' processes does not make them attach targets."""
        launcher.emit_start = False
        engine.preferences = engine.preferences.model_copy(
            update={"hide_processes_from_other_users": False}
        )
        discovery.processes = [
            make_process("5680", owner="bob"),
            make_process("5681", pid="102"),
        ]

        assert await engine.tick() == "5681"
        assert [p.port for p in launcher.profiles] == ["5681"]
        assert engine.attach_state("5680") == AttachState.UNSEEN

        launcher.profiles.clear()
        discovery.processes = [make_process("5680", owner="bob")]
        assert await engine.tick() is None
        assert launcher.profiles == []

    @pytest.mark.asyncio
    async def test_session_active_skips_discovery(
        self, engine: AutoAttachEngine, discovery: FakeDiscovery, launcher: FakeLauncher
    ) -> None:
        """Test that a running debug session gates the whole tick."""
        engine.debug_session_active = True

        assert await engine.tick() is None
        assert discovery.calls == 0
        assert launcher.profiles == []

    @pytest.mark.asyncio
    async def test_failed_attach_releases_lock(
        self,
        engine: AutoAttachEngine,
        launcher: FakeLauncher,
        lock_manager: PortLockManager,
    ) -> None:
        """Test that failures leave ports unseen and unlocked."""
        launcher.result = AttachConnectionRefusedError("5678")

        assert await engine.tick() is None

        assert [p.port for p in launcher.profiles] == ["5678", "5679"]
        assert engine.attached_ports == set()
        assert engine.connecting_ports == set()
        assert engine.attach_state("5678") == AttachState.UNSEEN
        assert not lock_manager.lock_path("5678").exists()
        assert not lock_manager.lock_path("5679").exists()

    @pytest.mark.asyncio
    async def test_declined_session_releases_lock(
        self,
        engine: AutoAttachEngine,
        launcher: FakeLauncher,
        lock_manager: PortLockManager,
    ) -> None:
        """Test that a launcher returning False counts as failure."""
        launcher.result = False

        assert await engine.tick() is None
        assert not lock_manager.lock_path("5678").exists()

    @pytest.mark.asyncio
    async def test_locked_port_skipped(
        self, engine: AutoAttachEngine, launcher: FakeLauncher, lock_dir
    ) -> None:
        """Test that a port held by another instance is skipped this tick."""
        other = PortLockManager(lock_dir=lock_dir)
        await other.try_acquire("5678")

        assert await engine.tick() == "5679"
        assert [p.port for p in launcher.profiles] == ["5679"]

    @pytest.mark.asyncio
    async def test_vanished_attached_port_pruned(self, engine: AutoAttachEngine) -> None:
        """Test that attached ports no longer discovered are forgotten."""
        engine.attached_ports.add("9999")

        await engine.tick()

        assert "9999" not in engine.attached_ports

    @pytest.mark.asyncio
    async def test_connecting_port_skipped(
        self, engine: AutoAttachEngine, launcher: FakeLauncher
    ) -> None:
        """Test that a port with an attempt in flight is not tried again."""
        engine.connecting_ports.add("5678")

        assert await engine.tick() == "5679"

    @pytest.mark.asyncio
    async def test_lock_released_after_grace_delay(
        self, engine: AutoAttachEngine, lock_manager: PortLockManager
    ) -> None:
        """Test that a successful attach keeps the lock only briefly."""
        await engine.tick()
        assert lock_manager.lock_path("5678").exists()

        await asyncio.sleep(0.2)

        assert not lock_manager.lock_path("5678").exists()

    @pytest.mark.asyncio
    async def test_hidden_other_users(
        self, engine: AutoAttachEngine, discovery: FakeDiscovery, launcher: FakeLauncher
    ) -> None:
        """Test that other users' processes are not auto-attached when hidden."""
        discovery.processes = [make_process("5680", owner="bob")]
        engine.preferences = engine.preferences.model_copy(
            update={"hide_processes_from_other_users": True}
        )

        assert await engine.tick() is None
        assert launcher.profiles == []


class TestAutoAttachLoop:
    """Tests for the auto-attach timer and session gating."""

    @pytest.mark.asyncio
    async def test_loop_stops_on_session_start(
        self, engine: AutoAttachEngine, launcher: FakeLauncher
    ) -> None:
        """Test that starting a session pauses auto-attach."""
        engine.start_auto_attach()
        await asyncio.sleep(0.2)

        assert len(launcher.profiles) == 1
        assert engine.debug_session_active is True
        assert engine.auto_attach_running is False

    @pytest.mark.asyncio
    async def test_not_started_while_session_active(self, engine: AutoAttachEngine) -> None:
        """Test that auto-attach refuses to start during a session."""
        engine.debug_session_active = True

        engine.start_auto_attach()

        assert engine.auto_attach_running is False

    @pytest.mark.asyncio
    async def test_restart_after_session_end(
        self, engine: AutoAttachEngine, launcher: FakeLauncher, discovery: FakeDiscovery
    ) -> None:
        """Test that auto-attach resumes after the cooldown."""
        await engine.tick()
        assert engine.debug_session_active is True

        launcher.result = False
        await launcher.stop_all()

        assert engine.debug_session_active is False
        assert "5678" not in engine.attached_ports
        assert engine.auto_attach_running is False

        await asyncio.sleep(0.15)

        assert engine.auto_attach_running is True
        assert discovery.calls >= 2

    @pytest.mark.asyncio
    async def test_no_restart_when_disabled(
        self, engine: AutoAttachEngine, launcher: FakeLauncher
    ) -> None:
        """Test that session end does not restart a disabled auto-attach."""
        await engine.tick()
        engine.preferences = engine.preferences.model_copy(update={"auto_attach": False})

        await launcher.stop_all()
        await asyncio.sleep(0.15)

        assert engine.auto_attach_running is False


class TestStatus:
    """Tests for status refresh."""

    @pytest.mark.asyncio
    async def test_status_text(self, engine: AutoAttachEngine) -> None:
        """Test the status indicator for discovered processes."""
        engine.preferences = engine.preferences.model_copy(update={"auto_attach": False})

        status = await engine.refresh_status()

        assert status.visible is True
        assert status.text == "Debugpy: 5678, 5679"
        assert status.ports == ["5678", "5679"]
        assert engine.known_ports == {"5678", "5679"}

    @pytest.mark.asyncio
    async def test_status_hidden_without_processes(
        self, engine: AutoAttachEngine, discovery: FakeDiscovery
    ) -> None:
        """Test that the indicator hides when nothing is found."""
        discovery.processes = []

        status = await engine.refresh_status()

        assert status.visible is False
        assert status.text == ""

    @pytest.mark.asyncio
    async def test_status_starts_auto_attach(self, engine: AutoAttachEngine) -> None:
        """Test that discovered processes kick off auto-attach when enabled."""
        await engine.refresh_status()

        assert engine.auto_attach_running is True


class TestManualAttach:
    """Tests for user-initiated attach."""

    @pytest.mark.asyncio
    async def test_attach(self, engine: AutoAttachEngine, launcher: FakeLauncher) -> None:
        """Test manual attach uses the manual profile."""
        profile = await engine.attach("5679")

        assert profile.name == "Attach to Port 5679"
        assert profile.to_launch_arguments()["console"] == "integratedTerminal"
        assert engine.attach_state("5679") == AttachState.ATTACHED
        assert launcher.profiles == [profile]

    @pytest.mark.asyncio
    async def test_attach_unknown_port(self, engine: AutoAttachEngine) -> None:
        """Test attaching to a port nothing listens on."""
        with pytest.raises(ProcessNotFoundError):
            await engine.attach("7777")

    @pytest.mark.asyncio
    async def test_attach_other_user_needs_confirmation(
        self, engine: AutoAttachEngine, discovery: FakeDiscovery, launcher: FakeLauncher
    ) -> None:
        """Test that another user's process requires explicit confirmation."""
        discovery.processes.append(make_process("5680", owner="bob"))

        with pytest.raises(OtherUserProcessError):
            await engine.attach("5680")
        assert launcher.profiles == []

        profile = await engine.attach("5680", allow_other_user=True)
        assert profile.port == "5680"

    @pytest.mark.asyncio
    async def test_attach_locked_port(self, engine: AutoAttachEngine, lock_dir) -> None:
        """Test that a port being attached elsewhere is refused."""
        other = PortLockManager(lock_dir=lock_dir)
        await other.try_acquire("5678")

        with pytest.raises(PortLockedError):
            await engine.attach("5678")

    @pytest.mark.asyncio
    async def test_attach_failure_releases_lock(
        self,
        engine: AutoAttachEngine,
        launcher: FakeLauncher,
        lock_manager: PortLockManager,
    ) -> None:
        """Test that a failed manual attach raises and unlocks."""
        launcher.result = False

        with pytest.raises(AttachError):
            await engine.attach("5678")
        assert not lock_manager.lock_path("5678").exists()

    @pytest.mark.asyncio
    async def test_attach_unexpected_error_wrapped(
        self, engine: AutoAttachEngine, launcher: FakeLauncher
    ) -> None:
        """Test that launcher crashes surface as AttachError."""
        launcher.result = RuntimeError("adapter crashed")

        with pytest.raises(AttachError, match="adapter crashed"):
            await engine.attach("5678")


class TestToggles:
    """Tests for preference toggles."""

    @pytest.mark.asyncio
    async def test_toggle_persists(self, engine: AutoAttachEngine, test_settings) -> None:
        """Test that toggles are saved to config.json."""
        enabled = await engine.toggle("auto_attach")

        assert enabled is False
        assert engine.preferences.auto_attach is False
        saved = json.loads(test_settings.config_file.read_text())
        assert saved["auto_attach"] is False

    @pytest.mark.asyncio
    async def test_toggle_clears_attach_state(self, engine: AutoAttachEngine) -> None:
        """Test that a toggle restarts monitoring with fresh state."""
        engine.attached_ports.add("5678")

        await engine.toggle("hide_processes_from_other_users")

        assert engine.attached_ports == set()
        assert engine.current_user_only is True

    @pytest.mark.asyncio
    async def test_toggle_unknown(self, engine: AutoAttachEngine) -> None:
        with pytest.raises(ValueError):
            await engine.toggle("colour")


class TestDispose:
    """Tests for shutdown."""

    @pytest.mark.asyncio
    async def test_dispose_releases_locks(
        self, lock_manager: PortLockManager, test_settings
    ) -> None:
        """Test that disposing releases locks still waiting for the grace delay."""
        engine = AutoAttachEngine(
            discovery=FakeDiscovery([make_process("5678")]),  # type: ignore[arg-type]
            lock_manager=lock_manager,
            launcher=FakeLauncher(),
            config=test_settings.model_copy(update={"auto_attach_release_delay_seconds": 60}),
        )
        await engine.tick()
        assert lock_manager.lock_path("5678").exists()

        await engine.dispose()

        assert not lock_manager.lock_path("5678").exists()
