"""Reading hints from and adding profiles to .vscode/launch.json.

Profiles marked with ``"debugpyAttacher": true`` are attach profiles: their
ports are probed for listeners and the first one is the template for attach
requests.
"""

import json
import logging
import re
from pathlib import Path
from typing import Any

from debugpy_attacher.core.exceptions import LaunchConfigError, PersistenceError
from debugpy_attacher.persistence.storage import atomic_write_text, read_text

logger = logging.getLogger(__name__)

ATTACHER_MARKER = "debugpyAttacher"
DEFAULT_PROFILE_NAME = "default-debugpy-attacher"

_STRING_OR_COMMENT = re.compile(r'"(?:\\.|[^"\\])*"|//[^\n]*|/\*.*?\*/', re.DOTALL)
_STRING_OR_TRAILING_COMMA = re.compile(r'"(?:\\.|[^"\\])*"|,(?=\s*[}\]])')

LAUNCH_JSON_HEADER = """{
    // Use IntelliSense to learn about possible attributes.
    // Hover to view descriptions of existing attributes.
    // For more information, visit: https://go.microsoft.com/fwlink/?linkid=830387
    "version": "0.2.0",
    "configurations": """


def _keep_strings(match: re.Match[str]) -> str:
    text = match.group(0)
    return text if text.startswith('"') else ""


def parse_jsonc(content: str) -> Any:
    """Parse JSON with comments and trailing commas."""
    without_comments = _STRING_OR_COMMENT.sub(_keep_strings, content)
    return json.loads(_STRING_OR_TRAILING_COMMA.sub(_keep_strings, without_comments))


def is_attacher_profile(config: Any) -> bool:
    return isinstance(config, dict) and config.get(ATTACHER_MARKER) is True


def profile_port(config: dict[str, Any]) -> str | None:
    """Port of a profile from ``connect.port`` or ``port``."""
    connect = config.get("connect")
    port = connect.get("port") if isinstance(connect, dict) else None
    if port is None:
        port = config.get("port")
    if port is None or isinstance(port, bool):
        return None
    port_str = str(port).strip()
    return port_str if port_str.isdigit() else None


def default_profile(port: int) -> dict[str, Any]:
    return {
        "name": DEFAULT_PROFILE_NAME,
        "type": "debugpy",
        "request": "attach",
        "connect": {"host": "localhost", "port": port},
        ATTACHER_MARKER: True,
        "pathMappings": [
            {
                "localRoot": "${workspaceFolder}",
                "remoteRoot": "${workspaceFolder}",
            }
        ],
        "justMyCode": False,
    }


def render_launch_json(configurations: list[dict[str, Any]]) -> str:
    body = json.dumps(configurations, indent=8).replace("\n", "\n    ")
    return f"{LAUNCH_JSON_HEADER}{body}\n}}\n"


class LaunchConfigReader:
    """Reads attach hints from the launch.json of each workspace folder."""

    def __init__(self, workspace_folders: list[Path] | None = None):
        self.workspace_folders = list(workspace_folders or [])

    @staticmethod
    def launch_json_path(folder: Path) -> Path:
        return folder / ".vscode" / "launch.json"

    async def load_configurations(self, folder: Path) -> list[dict[str, Any]]:
        """Configurations of one folder; unreadable files count as empty."""
        path = self.launch_json_path(folder)
        try:
            content = await read_text(path)
            if content is None:
                return []
            data = parse_jsonc(content)
        except (OSError, ValueError) as e:
            logger.debug(f"Ignoring unreadable {path}: {e}")
            return []

        configurations = data.get("configurations") if isinstance(data, dict) else None
        if not isinstance(configurations, list):
            return []
        return [c for c in configurations if isinstance(c, dict)]

    async def hinted_ports(self) -> list[str]:
        """Unique ports of attacher profiles across all folders."""
        ports: list[str] = []
        for folder in self.workspace_folders:
            for config in await self.load_configurations(folder):
                if not is_attacher_profile(config):
                    continue
                port = profile_port(config)
                if port and port not in ports:
                    ports.append(port)
        return ports

    async def preferred_profile(self) -> dict[str, Any] | None:
        """First attacher profile of the first workspace folder."""
        if not self.workspace_folders:
            return None
        for config in await self.load_configurations(self.workspace_folders[0]):
            if is_attacher_profile(config):
                return config
        return None

    async def ensure_default_profile(
        self,
        default_port: int,
        folder: Path | None = None,
    ) -> tuple[Path, bool]:
        """Add the default attacher profile unless one already exists.

        Args:
            default_port: Port written into the profile
            folder: Workspace folder (defaults to the first one)

        Returns:
            (launch.json path, whether the file was written)

        Raises:
            LaunchConfigError: No workspace folder, unparsable file or write failure
        """
        folder = folder or (self.workspace_folders[0] if self.workspace_folders else None)
        if folder is None:
            raise LaunchConfigError(
                code="NO_WORKSPACE",
                message="No workspace folder is open",
            )

        path = self.launch_json_path(folder)
        content = await read_text(path)
        configurations: list[dict[str, Any]] = []
        if content is not None:
            try:
                data = parse_jsonc(content)
            except ValueError as e:
                raise LaunchConfigError(
                    code="INVALID_LAUNCH_JSON",
                    message=f"Cannot update {path}: {e}",
                    details={"path": str(path)},
                )
            if isinstance(data, dict) and isinstance(data.get("configurations"), list):
                configurations = data["configurations"]

        for config in configurations:
            if is_attacher_profile(config) or (
                isinstance(config, dict) and config.get("name") == DEFAULT_PROFILE_NAME
            ):
                return path, False

        configurations.append(default_profile(default_port))
        try:
            await atomic_write_text(path, render_launch_json(configurations))
        except PersistenceError as e:
            raise LaunchConfigError(code=e.code, message=e.message, details=e.details)

        logger.info(f"Added {DEFAULT_PROFILE_NAME} (port {default_port}) to {path}")
        return path, True
