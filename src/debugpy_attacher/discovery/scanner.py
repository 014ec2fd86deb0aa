"""Process list scanning for debugpy processes."""

import logging
import re
from collections.abc import Iterable

from debugpy_attacher.config import settings
from debugpy_attacher.discovery.commands import CommandRunner, run_command
from debugpy_attacher.models.process import CandidateProcess, Provenance
from debugpy_attacher.utils.users import current_username, is_windows, same_user

logger = logging.getLogger(__name__)

DEBUG_AGENT_MARKER = "debugpy"
INTERPRETER_MARKER = "python"

POSIX_SCAN_COMMAND = ("ps", "-eo", "user,pid,args")
WINDOWS_SCAN_COMMAND = (
    "wmic",
    "process",
    "where",
    f"commandline like '%{DEBUG_AGENT_MARKER}%'",
    "get",
    "Owner,ProcessId,CommandLine",
    "/format:csv",
)

PORT_FLAG = re.compile(r"--port\s+(\d+)")
LISTEN_FLAG = re.compile(r"--listen\s+(\d+)(?![\d.:])")
HOST_PORT = re.compile(r":(\d{4,5})")
DEFAULT_RANGE_PORT = re.compile(r"\b(5\d{3}|6\d{3}|7\d{3}|8\d{3}|9\d{3})\b")

# Tried in order, first match wins. Earlier patterns are more trustworthy.
POSIX_PORT_PATTERNS = (PORT_FLAG, LISTEN_FLAG)
WINDOWS_PORT_PATTERNS = (PORT_FLAG, LISTEN_FLAG, HOST_PORT, DEFAULT_RANGE_PORT)


def extract_port(command: str, patterns: Iterable[re.Pattern[str]]) -> str | None:
    """Return the port from the first pattern that matches ``command``."""
    for pattern in patterns:
        match = pattern.search(command)
        if match:
            return match.group(1)
    return None


def parse_posix_line(line: str, username: str) -> CandidateProcess | None:
    """Parse one ``ps -eo user,pid,args`` line."""
    parts = line.strip().split()
    if len(parts) < 3:
        return None

    owner, pid = parts[0], parts[1]
    command = " ".join(parts[2:])
    port = extract_port(command, POSIX_PORT_PATTERNS)
    if port is None:
        return None

    return CandidateProcess(
        pid=pid,
        port=port,
        owner=owner,
        is_current_user=same_user(owner, username, case_insensitive=False),
        provenance=Provenance.SCANNER,
        command_hint=command,
    )


def parse_windows_line(line: str, username: str) -> CandidateProcess | None:
    """Parse one ``owner,pid,commandline`` CSV line from wmic."""
    parts = line.strip().split(",")
    if len(parts) < 3:
        return None

    command = ",".join(parts[2:]).strip()
    if DEBUG_AGENT_MARKER not in command:
        return None

    owner_with_domain = parts[0].strip()
    owner = owner_with_domain.split("\\")[-1]
    pid = parts[1].strip()
    if not pid.isdigit():
        return None

    port = extract_port(command, WINDOWS_PORT_PATTERNS)
    if port is None:
        return None

    return CandidateProcess(
        pid=pid,
        port=port,
        owner=owner,
        is_current_user=same_user(owner, username, case_insensitive=True),
        provenance=Provenance.SCANNER,
        command_hint=command,
    )


def parse_process_list(output: str, username: str, windows: bool = False) -> list[CandidateProcess]:
    """Parse listing output into candidates, dropping repeated ports.

    Args:
        output: Raw stdout of the scan command
        username: Name of the invoking user
        windows: Parse wmic CSV instead of ps output
    """
    processes: list[CandidateProcess] = []
    seen_ports: set[str] = set()

    for line in output.splitlines():
        if not line.strip():
            continue

        if windows:
            process = parse_windows_line(line, username)
        else:
            # Same filter as `grep python | grep debugpy`
            if INTERPRETER_MARKER not in line or DEBUG_AGENT_MARKER not in line:
                continue
            process = parse_posix_line(line, username)

        if process and process.port not in seen_ports:
            seen_ports.add(process.port)
            processes.append(process)

    return processes


class ProcessScanner:
    """Finds debugpy processes by listing the process table."""

    def __init__(
        self,
        runner: CommandRunner = run_command,
        username: str | None = None,
        windows: bool | None = None,
        timeout: float | None = None,
        max_output: int | None = None,
    ):
        self._runner = runner
        self.username = username or current_username()
        self.windows = is_windows() if windows is None else windows
        self.timeout = timeout or settings.scan_timeout_seconds
        self.max_output = max_output or settings.scan_max_output_bytes

    @property
    def command(self) -> tuple[str, ...]:
        return WINDOWS_SCAN_COMMAND if self.windows else POSIX_SCAN_COMMAND

    async def scan(self) -> list[CandidateProcess]:
        """Return candidates from the process list; never raises."""
        try:
            output = await self._runner(self.command, self.timeout, self.max_output)
            if not output:
                return []
            return parse_process_list(output, self.username, windows=self.windows)
        except Exception as e:
            logger.debug(f"Process scan failed: {e}")
            return []
