"""Debug launchers.

This package provides:
- DebugLauncher: interface the attach engine hands profiles to
- DAPClient: low-level DAP protocol client
- DebugpyLauncher: attaches to debugpy listeners over DAP
"""

from debugpy_attacher.adapters.base import DebugLauncher, DebugSessionInfo
from debugpy_attacher.adapters.dap_client import DAPClient
from debugpy_attacher.adapters.debugpy_launcher import DebugpyLauncher

__all__ = [
    "DAPClient",
    "DebugLauncher",
    "DebugSessionInfo",
    "DebugpyLauncher",
]
