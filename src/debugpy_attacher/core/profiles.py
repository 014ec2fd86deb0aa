"""Construction of attach profiles for discovered processes."""

import copy
from typing import Any

from debugpy_attacher.models.attach import AttachProfile
from debugpy_attacher.persistence.launch_config import ATTACHER_MARKER

DEFAULT_HOST = "localhost"
AUTO_ATTACH_TIMEOUT_MS = 5000


def build_attach_profile(
    port: str,
    preferred: dict[str, Any] | None = None,
    auto: bool = False,
) -> AttachProfile:
    """Build the attach request for ``port``.

    A user-declared profile is used as template with the discovered port
    substituted in; otherwise a minimal profile is generated.

    Args:
        port: Discovered debugpy port
        preferred: Attacher profile from launch.json, if any
        auto: Whether this is an automatic attach
    """
    port_number = int(port)

    if preferred:
        config = copy.deepcopy(preferred)
        config.pop(ATTACHER_MARKER, None)
        connect = dict(config.get("connect") or {})
        connect["port"] = port_number
        if not connect.get("host"):
            connect["host"] = DEFAULT_HOST
        config["connect"] = connect
        config.pop("port", None)
        if auto or not config.get("name"):
            config["name"] = f"Auto-attach to {port}" if auto else f"Attach to Port {port}"
        return AttachProfile.model_validate(config)

    if auto:
        return AttachProfile.model_validate(
            {
                "name": f"Auto-attach to {port}",
                "type": "python",
                "request": "attach",
                "connect": {"host": DEFAULT_HOST, "port": port_number},
                "justMyCode": False,
                "timeout": AUTO_ATTACH_TIMEOUT_MS,
            }
        )

    return AttachProfile.model_validate(
        {
            "name": f"Attach to Port {port}",
            "type": "python",
            "request": "attach",
            "connect": {"host": DEFAULT_HOST, "port": port_number},
            "justMyCode": False,
            "console": "integratedTerminal",
        }
    )
