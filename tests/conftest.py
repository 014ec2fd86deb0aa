"""Global test fixtures."""

from collections.abc import AsyncGenerator, Iterable, Sequence
from pathlib import Path

import pytest
import pytest_asyncio

from debugpy_attacher.adapters.base import DebugLauncher, DebugSessionInfo
from debugpy_attacher.config import Settings
from debugpy_attacher.core.engine import AutoAttachEngine
from debugpy_attacher.core.locks import PortLockManager
from debugpy_attacher.models.attach import AttachProfile
from debugpy_attacher.models.process import CandidateProcess, Provenance
from debugpy_attacher.persistence.preferences import MonitorPreferences, PreferenceStore

TEST_USER = "alice"


def make_process(
    port: str,
    owner: str = TEST_USER,
    pid: str = "4821",
    provenance: Provenance = Provenance.SCANNER,
) -> CandidateProcess:
    """Build a candidate process for tests."""
    return CandidateProcess(
        pid=pid,
        port=port,
        owner=owner,
        is_current_user=owner == TEST_USER,
        provenance=provenance,
    )


class FakeRunner:
    """Command runner returning canned output per command line or program."""

    def __init__(self, outputs: dict[str, str | None] | None = None):
        self.outputs = outputs or {}
        self.calls: list[tuple[str, ...]] = []

    async def __call__(self, argv: Sequence[str], timeout: float, max_output: int) -> str | None:
        self.calls.append(tuple(argv))
        key = " ".join(argv)
        if key in self.outputs:
            return self.outputs[key]
        return self.outputs.get(argv[0])


class FakeDiscovery:
    """Discovery returning a fixed process list and counting calls."""

    def __init__(self, processes: Iterable[CandidateProcess] = ()):
        self.processes = list(processes)
        self.calls = 0

    async def discover(self, current_user_only: bool = False) -> list[CandidateProcess]:
        self.calls += 1
        if current_user_only:
            return [p for p in self.processes if p.is_current_user]
        return list(self.processes)


class FakeLauncher(DebugLauncher):
    """Launcher that records attach profiles instead of connecting."""

    def __init__(self, result: bool | Exception = True, emit_start: bool = True):
        super().__init__()
        self.result = result
        self.emit_start = emit_start
        self.profiles: list[AttachProfile] = []

    async def start_debugging(self, profile: AttachProfile) -> bool:
        self.profiles.append(profile)
        if isinstance(self.result, Exception):
            raise self.result
        if self.result and self.emit_start:
            self._emit_start(DebugSessionInfo(name=profile.name, port=profile.port))
        return self.result


@pytest.fixture
def tmp_data_dir(tmp_path: Path) -> Path:
    """Create temporary data directory."""
    data_dir = tmp_path / ".debugpy-attacher"
    data_dir.mkdir(parents=True)
    return data_dir


@pytest.fixture
def lock_dir(tmp_path: Path) -> Path:
    """Per-user lock directory under the test temp dir."""
    return tmp_path / f"debugpy-attacher-{TEST_USER}" / "locks"


@pytest.fixture
def test_settings(tmp_data_dir: Path, tmp_path: Path) -> Settings:
    """Create test settings with short timers and temporary directories."""
    return Settings(
        host="127.0.0.1",
        port=5681,
        data_dir=tmp_data_dir,
        lock_root=tmp_path,
        auto_attach_retry_interval_ms=100,
        status_refresh_seconds=0.05,
        session_end_cooldown_seconds=0.05,
        auto_attach_release_delay_seconds=0.05,
        manual_attach_release_delay_seconds=0.05,
        enable_live_monitoring=False,
        auto_attach=False,
    )


@pytest.fixture
def lock_manager(lock_dir: Path) -> PortLockManager:
    """Lock manager over the temporary lock directory."""
    return PortLockManager(lock_dir=lock_dir, stale_after=30, activity_window=60)


@pytest.fixture
def launcher() -> FakeLauncher:
    return FakeLauncher()


@pytest.fixture
def discovery() -> FakeDiscovery:
    return FakeDiscovery([make_process("5678", pid="100"), make_process("5679", pid="101")])


@pytest_asyncio.fixture
async def engine(
    discovery: FakeDiscovery,
    lock_manager: PortLockManager,
    launcher: FakeLauncher,
    test_settings: Settings,
) -> AsyncGenerator[AutoAttachEngine, None]:
    """Engine wired to fakes; timers are not started."""
    engine = AutoAttachEngine(
        discovery=discovery,  # type: ignore[arg-type]
        lock_manager=lock_manager,
        launcher=launcher,
        preferences=MonitorPreferences(live_monitoring=False, auto_attach=True),
        preference_store=PreferenceStore(test_settings.config_file),
        config=test_settings,
    )
    yield engine
    await engine.dispose()
