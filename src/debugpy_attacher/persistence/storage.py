"""Atomic file storage operations."""

import contextlib
import json
import os
from pathlib import Path
from typing import Any

import aiofiles
import aiofiles.os

from debugpy_attacher.core.exceptions import PersistenceError


async def atomic_write_text(path: Path, content: str) -> None:
    """Write text atomically using temp file + rename.

    The file is either fully written or left untouched.

    Args:
        path: Target file path
        content: Text to write
    """
    path.parent.mkdir(parents=True, exist_ok=True)

    temp_path = path.with_suffix(path.suffix + ".tmp")

    try:
        async with aiofiles.open(temp_path, "w", encoding="utf-8") as f:
            await f.write(content)
            await f.flush()
            os.fsync(f.fileno())

        # Atomic rename (on POSIX systems)
        await aiofiles.os.replace(temp_path, path)

    except Exception as e:
        with contextlib.suppress(FileNotFoundError):
            await aiofiles.os.remove(temp_path)

        raise PersistenceError(
            code="WRITE_FAILED",
            message=f"Failed to write {path}: {e}",
            details={"path": str(path), "error": str(e)},
        )


async def atomic_write(path: Path, data: dict[str, Any]) -> None:
    """Write JSON data atomically."""
    await atomic_write_text(path, json.dumps(data, indent=2, default=str))


async def read_text(path: Path) -> str | None:
    """Read a text file, returning None if it doesn't exist."""
    try:
        async with aiofiles.open(path, encoding="utf-8") as f:
            return await f.read()
    except FileNotFoundError:
        return None


async def safe_read(path: Path) -> dict[str, Any] | None:
    """Read JSON data, returning None if file doesn't exist.

    Args:
        path: File path to read

    Returns:
        Parsed JSON data or None if file doesn't exist
    """
    content = await read_text(path)
    if content is None:
        return None
    try:
        data: dict[str, Any] = json.loads(content)
        return data
    except json.JSONDecodeError as e:
        raise PersistenceError(
            code="INVALID_JSON",
            message=f"Invalid JSON in {path}: {e}",
            details={"path": str(path), "error": str(e)},
        )


async def safe_delete(path: Path) -> bool:
    """Delete a file if it exists.

    Args:
        path: File path to delete

    Returns:
        True if file was deleted, False if it didn't exist
    """
    try:
        await aiofiles.os.remove(path)
        return True
    except FileNotFoundError:
        return False
