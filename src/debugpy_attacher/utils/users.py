"""Host and user identity helpers."""

import getpass
import os
import sys


def is_windows() -> bool:
    return sys.platform == "win32"


def current_username() -> str:
    """Name of the user running this instance."""
    try:
        return getpass.getuser()
    except (KeyError, OSError):
        # No passwd entry (containers running with an arbitrary uid)
        return str(os.getuid()) if hasattr(os, "getuid") else "unknown"


def same_user(owner: str, username: str, case_insensitive: bool | None = None) -> bool:
    """Compare a process owner with a username.

    Windows account names are case-insensitive; POSIX ones are not.
    """
    if case_insensitive is None:
        case_insensitive = is_windows()
    if case_insensitive:
        return owner.lower() == username.lower()
    return owner == username
