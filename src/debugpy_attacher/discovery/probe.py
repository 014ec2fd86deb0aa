"""Listener probing for ports hinted by launch configurations."""

import asyncio
import logging
import shutil
from collections.abc import Iterable

from debugpy_attacher.config import settings
from debugpy_attacher.discovery.commands import CommandRunner, run_command
from debugpy_attacher.models.process import CandidateProcess, Provenance
from debugpy_attacher.utils.users import current_username, is_windows, same_user

logger = logging.getLogger(__name__)

LSOF = "lsof"
LISTEN_MARKER = "LISTEN"


def probe_command(port: str) -> tuple[str, ...]:
    return (LSOF, "-i", f":{port}", "-P", "-n")


def parse_lsof_output(output: str, port: str, username: str) -> CandidateProcess | None:
    """Return the first listening socket owner in ``lsof`` output.

    Format: COMMAND PID USER FD TYPE DEVICE SIZE/OFF NODE NAME. The process
    is accepted whatever its name: the port came from a trusted
    launch configuration, so a container proxy counts as a target.
    """
    lines = [line for line in output.splitlines() if line.strip()]

    # Skip header
    for line in lines[1:]:
        if LISTEN_MARKER not in line:
            continue
        parts = line.split()
        if len(parts) < 3:
            continue
        command, pid, owner = parts[0], parts[1], parts[2]
        return CandidateProcess(
            pid=pid,
            port=port,
            owner=owner,
            is_current_user=same_user(owner, username, case_insensitive=False),
            provenance=Provenance.PROBE,
            command_hint=command,
        )
    return None


class PortProbe:
    """Confirms listeners on given ports with ``lsof``.

    Only checks ports it is handed; it never searches for ports itself.
    """

    def __init__(
        self,
        runner: CommandRunner = run_command,
        username: str | None = None,
        available: bool | None = None,
        timeout: float | None = None,
        max_output: int | None = None,
    ):
        self._runner = runner
        self.username = username or current_username()
        if available is None:
            available = not is_windows() and shutil.which(LSOF) is not None
        self.available = available
        self.timeout = timeout or settings.probe_timeout_seconds
        self.max_output = max_output or settings.probe_max_output_bytes

    async def probe(self, ports: Iterable[str]) -> list[CandidateProcess]:
        """Check every hinted port concurrently; never raises."""
        port_list = [port for port in dict.fromkeys(ports) if port.isdigit()]
        if not self.available or not port_list:
            return []

        results = await asyncio.gather(
            *(self._check_port(port) for port in port_list),
            return_exceptions=True,
        )

        processes: list[CandidateProcess] = []
        for port, result in zip(port_list, results):
            if isinstance(result, BaseException):
                logger.debug(f"Probe of port {port} failed: {result}")
            elif result is not None:
                processes.append(result)
        return processes

    async def _check_port(self, port: str) -> CandidateProcess | None:
        output = await self._runner(probe_command(port), self.timeout, self.max_output)
        if not output:
            return None
        return parse_lsof_output(output, port, self.username)
