"""Concurrent discovery and merge of debugpy candidates."""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable

from debugpy_attacher.discovery.probe import PortProbe
from debugpy_attacher.discovery.scanner import ProcessScanner
from debugpy_attacher.models.process import CandidateProcess, Provenance

logger = logging.getLogger(__name__)

HintSource = Callable[[], Awaitable[Iterable[str]]]


def merge_candidates(
    scanned: Iterable[CandidateProcess],
    probed: Iterable[CandidateProcess],
) -> list[CandidateProcess]:
    """Merge both strategies into one list with one entry per port.

    Scanner entries come first and win on port collisions.
    """
    merged: list[CandidateProcess] = []
    seen_ports: set[str] = set()

    for provenance, processes in ((Provenance.SCANNER, scanned), (Provenance.PROBE, probed)):
        for process in processes:
            if process.port in seen_ports:
                continue
            seen_ports.add(process.port)
            if process.provenance != provenance:
                process = process.model_copy(update={"provenance": provenance})
            merged.append(process)

    return merged


def only_current_user(processes: Iterable[CandidateProcess]) -> list[CandidateProcess]:
    return [p for p in processes if p.is_current_user]


async def _no_hints() -> list[str]:
    return []


class DiscoveryCoordinator:
    """Runs the process scan and the hinted-port probe side by side."""

    def __init__(
        self,
        scanner: ProcessScanner | None = None,
        probe: PortProbe | None = None,
        hint_source: HintSource | None = None,
    ):
        self.scanner = scanner or ProcessScanner()
        self.probe = probe or PortProbe()
        self._hint_source = hint_source or _no_hints

    async def discover(self, current_user_only: bool = False) -> list[CandidateProcess]:
        """Discover candidates for this cycle.

        Args:
            current_user_only: Hide processes owned by other users

        Returns:
            Deduplicated candidates, scanner results first
        """
        scanned, probed = await asyncio.gather(
            self._scan(),
            self._probe_hinted(),
        )
        processes = merge_candidates(scanned, probed)
        if current_user_only:
            processes = only_current_user(processes)
        return processes

    async def _scan(self) -> list[CandidateProcess]:
        try:
            return await self.scanner.scan()
        except Exception as e:
            logger.debug(f"Process scan error: {e}")
            return []

    async def _probe_hinted(self) -> list[CandidateProcess]:
        try:
            ports = await self._hint_source()
            return await self.probe.probe(ports)
        except Exception as e:
            logger.debug(f"Port probe error: {e}")
            return []
