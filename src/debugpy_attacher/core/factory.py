"""Wiring of the long-lived attacher components."""

import logging

from debugpy_attacher.adapters.base import DebugLauncher
from debugpy_attacher.adapters.debugpy_launcher import DebugpyLauncher
from debugpy_attacher.config import Settings, settings
from debugpy_attacher.core.engine import AutoAttachEngine
from debugpy_attacher.core.locks import PortLockManager
from debugpy_attacher.discovery.coordinator import DiscoveryCoordinator
from debugpy_attacher.discovery.probe import PortProbe
from debugpy_attacher.discovery.scanner import ProcessScanner
from debugpy_attacher.persistence.launch_config import LaunchConfigReader
from debugpy_attacher.persistence.preferences import MonitorPreferences, PreferenceStore
from debugpy_attacher.utils.users import current_username

logger = logging.getLogger(__name__)


async def create_engine(
    config: Settings | None = None,
    launcher: DebugLauncher | None = None,
) -> AutoAttachEngine:
    """Build an engine and its collaborators from settings.

    Args:
        config: Settings to use (defaults to the global settings)
        launcher: Debug launcher (defaults to DebugpyLauncher)

    Returns:
        An engine that has not been started yet
    """
    config = config or settings
    config.ensure_directories()
    username = current_username()

    launch_config = LaunchConfigReader(config.workspace_folders)
    discovery = DiscoveryCoordinator(
        scanner=ProcessScanner(
            username=username,
            timeout=config.scan_timeout_seconds,
            max_output=config.scan_max_output_bytes,
        ),
        probe=PortProbe(
            username=username,
            timeout=config.probe_timeout_seconds,
            max_output=config.probe_max_output_bytes,
        ),
        hint_source=launch_config.hinted_ports,
    )
    lock_manager = PortLockManager(
        lock_dir=config.lock_dir_for(username),
        stale_after=config.stale_lock_seconds,
        activity_window=config.activity_window_seconds,
    )

    preference_store = PreferenceStore(config.config_file)
    preferences = await preference_store.load(MonitorPreferences.from_settings(config))

    logger.debug(f"Lock directory: {lock_manager.lock_dir}")
    return AutoAttachEngine(
        discovery=discovery,
        lock_manager=lock_manager,
        launcher=launcher or DebugpyLauncher(timeout=config.dap_timeout_seconds),
        launch_config=launch_config,
        preferences=preferences,
        preference_store=preference_store,
        config=config,
    )
