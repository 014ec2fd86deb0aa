"""Process and port discovery.

This package provides:
- ProcessScanner: parses the OS process list for debugpy processes
- PortProbe: confirms listeners on ports hinted by launch.json
- DiscoveryCoordinator: runs both concurrently and merges by port
"""

from debugpy_attacher.discovery.coordinator import DiscoveryCoordinator, merge_candidates
from debugpy_attacher.discovery.probe import PortProbe
from debugpy_attacher.discovery.scanner import ProcessScanner

__all__ = [
    "DiscoveryCoordinator",
    "PortProbe",
    "ProcessScanner",
    "merge_candidates",
]
