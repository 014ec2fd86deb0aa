"""Bounded execution of external listing commands."""

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable, Sequence

logger = logging.getLogger(__name__)

READ_CHUNK_SIZE = 64 * 1024

# (argv, timeout, max_output) -> decoded stdout or None
CommandRunner = Callable[[Sequence[str], float, int], Awaitable[str | None]]


class _OutputLimitExceeded(Exception):
    pass


async def _read_capped(stream: asyncio.StreamReader, limit: int) -> bytes:
    chunks: list[bytes] = []
    size = 0
    while True:
        chunk = await stream.read(READ_CHUNK_SIZE)
        if not chunk:
            break
        size += len(chunk)
        if size > limit:
            raise _OutputLimitExceeded()
        chunks.append(chunk)
    return b"".join(chunks)


async def run_command(argv: Sequence[str], timeout: float, max_output: int) -> str | None:
    """Run a command and return its stdout.

    Returns None when the command cannot be started, exceeds ``timeout``
    or ``max_output`` bytes, exits non-zero, or prints nothing.

    Args:
        argv: Program and arguments (no shell)
        timeout: Seconds before the process is killed
        max_output: Maximum stdout size in bytes
    """
    try:
        process = await asyncio.create_subprocess_exec(
            *argv,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.DEVNULL,
        )
    except OSError as e:
        logger.debug(f"Could not run {argv[0]}: {e}")
        return None

    async def communicate() -> bytes:
        assert process.stdout is not None
        data = await _read_capped(process.stdout, max_output)
        await process.wait()
        return data

    try:
        output = await asyncio.wait_for(communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        logger.debug(f"{argv[0]} timed out after {timeout}s")
        await _kill(process)
        return None
    except _OutputLimitExceeded:
        logger.debug(f"{argv[0]} output exceeded {max_output} bytes")
        await _kill(process)
        return None

    if process.returncode != 0:
        logger.debug(f"{argv[0]} exited with code {process.returncode}")
        return None

    text = output.decode("utf-8", errors="replace")
    if not text.strip():
        return None
    return text


async def _kill(process: asyncio.subprocess.Process) -> None:
    with contextlib.suppress(ProcessLookupError):
        process.kill()
    with contextlib.suppress(Exception):
        await process.wait()
