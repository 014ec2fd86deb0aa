"""Filesystem port locks shared by every instance of one OS user.

A lock is ``port-<port>.lock`` inside the per-user lock directory, created
with an exclusive open. Its mtime is the staleness clock and its content
names the holder. Each instance also keeps ``activity-<instance>.heartbeat``
fresh while the user interacts with it, so a long attach in a window that
is still in use is not mistaken for an abandoned lock.
"""

import contextlib
import logging
import os
import socket
import time
import uuid
from collections.abc import Callable
from pathlib import Path

import aiofiles
import aiofiles.os
from pydantic import ValidationError

from debugpy_attacher.config import settings
from debugpy_attacher.models.lock import PortLockRecord
from debugpy_attacher.persistence.storage import read_text, safe_delete
from debugpy_attacher.utils.users import current_username

logger = logging.getLogger(__name__)

HEARTBEAT_MIN_INTERVAL = 1.0

utime = aiofiles.os.wrap(os.utime)


class PortLockManager:
    """Non-blocking try-locks over ports, with stale lock reclaim.

    Locks stay valid while younger than ``stale_after`` seconds, or while
    their holder reported user activity within ``activity_window`` seconds.
    """

    def __init__(
        self,
        lock_dir: Path | None = None,
        stale_after: float | None = None,
        activity_window: float | None = None,
        instance_id: str | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self.lock_dir = lock_dir or settings.lock_dir_for(current_username())
        self.stale_after = stale_after if stale_after is not None else settings.stale_lock_seconds
        self.activity_window = (
            activity_window if activity_window is not None else settings.activity_window_seconds
        )
        self.instance_id = instance_id or uuid.uuid4().hex[:12]
        self.owner_token = f"{socket.gethostname()}:{os.getpid()}:{self.instance_id}"
        self._clock = clock
        self._held: set[str] = set()
        self._last_activity: float | None = None
        self._last_heartbeat_write: float | None = None

    @property
    def held_ports(self) -> set[str]:
        return set(self._held)

    @property
    def last_activity(self) -> float | None:
        return self._last_activity

    def lock_path(self, port: str) -> Path:
        return self.lock_dir / f"port-{port}.lock"

    def heartbeat_path(self, instance_id: str | None = None) -> Path:
        return self.lock_dir / f"activity-{instance_id or self.instance_id}.heartbeat"

    def claim_path(self, port: str) -> Path:
        return self.lock_dir / f"port-{port}.lock.{self.instance_id}.reclaim"

    async def _ensure_lock_dir(self) -> None:
        """Create the lock directory, refusing one another user controls."""
        await aiofiles.os.makedirs(self.lock_dir, mode=0o700, exist_ok=True)
        if hasattr(os, "getuid"):
            owner = (await aiofiles.os.stat(self.lock_dir)).st_uid
            if owner != os.getuid():
                raise PermissionError(f"{self.lock_dir} is owned by uid {owner}")

    async def try_acquire(self, port: str) -> bool:
        """Claim ``port`` without blocking.

        Returns:
            True if the lock is now held by this instance. Contention and
            any filesystem error return False.
        """
        try:
            await self._ensure_lock_dir()

            if await self._create(port):
                return True

            if not await self.is_stale(port):
                logger.debug(f"Port {port} is locked by another instance")
                return False

            if not await self._reclaim(port):
                return False
            return await self._create(port)

        except (OSError, ValueError) as e:
            logger.debug(f"Could not acquire lock for port {port}: {e}")
            return False

    async def _reclaim(self, port: str) -> bool:
        """Remove a stale entry so that only one reclaimer can replace it.

        The entry is first renamed to a name private to this instance. A
        rename is atomic, so of several instances that judged the same entry
        stale only one moves it. The moved entry is checked again, because
        another instance may have replaced the stale one with a fresh lock
        between our staleness check and the rename; such a lock is put back.
        """
        path = self.lock_path(port)
        claim = self.claim_path(port)
        try:
            await aiofiles.os.rename(path, claim)
        except FileNotFoundError:
            # Someone else moved it; the exclusive create decides
            return True

        if not await self._entry_is_stale(claim):
            logger.debug(f"Lock for port {port} was renewed by another instance")
            try:
                await aiofiles.os.link(claim, path)
            except FileExistsError:
                logger.debug(f"Port {port} was locked again while restoring")
            finally:
                await safe_delete(claim)
            return False

        logger.info(f"Reclaiming stale lock for port {port}")
        await safe_delete(claim)
        return True

    async def _create(self, port: str) -> bool:
        record = PortLockRecord(
            port=port,
            owner_token=self.owner_token,
            instance_id=self.instance_id,
        )
        try:
            async with aiofiles.open(self.lock_path(port), "x", encoding="utf-8") as f:
                await f.write(record.model_dump_json())
        except FileExistsError:
            return False

        self._held.add(port)
        logger.debug(f"Acquired lock for port {port}")
        return True

    async def read_record(self, port: str) -> PortLockRecord | None:
        """Holder of the lock, or None if absent or unreadable."""
        return await self._read_entry(self.lock_path(port))

    async def _read_entry(self, path: Path) -> PortLockRecord | None:
        try:
            content = await read_text(path)
        except (OSError, ValueError):
            # ValueError covers content that is not UTF-8
            return None
        if not content:
            return None
        try:
            return PortLockRecord.model_validate_json(content)
        except ValidationError:
            return None

    async def is_stale(self, port: str) -> bool:
        """Whether an existing lock may be reclaimed.

        Stale means older than ``stale_after`` AND no heartbeat from the
        holder within ``activity_window``. A missing lock counts as stale.
        """
        return await self._entry_is_stale(self.lock_path(port))

    async def _entry_is_stale(self, path: Path) -> bool:
        try:
            stat = await aiofiles.os.stat(path)
        except FileNotFoundError:
            return True

        now = self._clock()
        if now - stat.st_mtime <= self.stale_after:
            return False

        record = await self._read_entry(path)
        if record is not None:
            heartbeat = await self._heartbeat_time(record.instance_id)
            if heartbeat is not None and now - heartbeat <= self.activity_window:
                return False

        return True

    async def _heartbeat_time(self, instance_id: str) -> float | None:
        observed: float | None = None
        try:
            observed = (await aiofiles.os.stat(self.heartbeat_path(instance_id))).st_mtime
        except OSError:
            pass

        if instance_id == self.instance_id and self._last_activity is not None:
            observed = max(observed or 0.0, self._last_activity)
        return observed

    async def release(self, port: str) -> None:
        """Drop the lock if this instance still holds it.

        Absent locks and locks reclaimed by another instance are left alone.
        """
        self._held.discard(port)
        record = await self.read_record(port)
        if record is None or record.instance_id != self.instance_id:
            return

        try:
            await safe_delete(self.lock_path(port))
            logger.debug(f"Released lock for port {port}")
        except OSError as e:
            logger.debug(f"Could not release lock for port {port}: {e}")

    async def mark_user_activity(self) -> None:
        """Record user activity and refresh this instance's heartbeat file."""
        now = self._clock()
        self._last_activity = now

        if (
            self._last_heartbeat_write is not None
            and now - self._last_heartbeat_write < HEARTBEAT_MIN_INTERVAL
        ):
            return

        try:
            await self._ensure_lock_dir()
            path = self.heartbeat_path()
            async with aiofiles.open(path, "a", encoding="utf-8"):
                pass
            await utime(path, (now, now))
            self._last_heartbeat_write = now
        except OSError as e:
            logger.debug(f"Could not write heartbeat: {e}")

    async def cleanup(self) -> None:
        """Release every held lock and remove the heartbeat (best effort)."""
        for port in list(self._held):
            try:
                await self.release(port)
            except Exception as e:
                logger.debug(f"Cleanup of lock for port {port} failed: {e}")

        with contextlib.suppress(OSError):
            await safe_delete(self.heartbeat_path())
        logger.debug("Port locks cleaned up")
