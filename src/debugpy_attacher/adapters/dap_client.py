"""Minimal Debug Adapter Protocol client used for attaching.

Only what an attach needs: Content-Length framing, request/response
correlation and event delivery. Everything else the debugger does happens
after the attach and is out of our hands.
"""

import asyncio
import contextlib
import json
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from debugpy_attacher.core.exceptions import DAPError, DAPTimeoutError

logger = logging.getLogger(__name__)

EventHandler = Callable[[str, dict[str, Any]], Awaitable[None]]
CloseHandler = Callable[[], Awaitable[None]]

HEADER_SEPARATOR = b"\r\n\r\n"


def encode_message(message: dict[str, Any]) -> bytes:
    """Frame a DAP message."""
    body = json.dumps(message).encode("utf-8")
    return f"Content-Length: {len(body)}".encode("ascii") + HEADER_SEPARATOR + body


async def read_message(reader: asyncio.StreamReader) -> dict[str, Any] | None:
    """Read one framed DAP message, or None at end of stream."""
    length: int | None = None
    while True:
        line = await reader.readline()
        if not line:
            return None
        line = line.strip()
        if not line:
            break
        name, _, value = line.decode("ascii", errors="replace").partition(":")
        if name.strip().lower() == "content-length":
            length = int(value.strip())

    if not length:
        return None
    message: dict[str, Any] = json.loads(await reader.readexactly(length))
    return message


class DAPClient:
    """One DAP connection to a debug agent.

    A background task reads messages; responses resolve the matching
    pending request and events go to ``on_event``. When the agent closes
    the connection, pending requests fail and ``on_close`` runs once.
    """

    def __init__(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        on_event: EventHandler | None = None,
        on_close: CloseHandler | None = None,
        timeout: float = 5.0,
    ):
        self._reader = reader
        self._writer = writer
        self._on_event = on_event
        self._on_close = on_close
        self._timeout = timeout

        self._seq = 0
        self._pending: dict[int, asyncio.Future[dict[str, Any]]] = {}
        self._reader_task: asyncio.Task[None] | None = None
        self._closed = False

    @property
    def is_connected(self) -> bool:
        return self._reader_task is not None and not self._closed

    async def start(self) -> None:
        self._reader_task = asyncio.create_task(self._read_loop())

    async def stop(self) -> None:
        """Close the connection. Safe to call from an event handler."""
        self._closed = True
        task = self._reader_task
        if task and task is not asyncio.current_task():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._fail_pending()
        self._writer.close()
        with contextlib.suppress(Exception):
            await self._writer.wait_closed()

    async def request(
        self,
        command: str,
        arguments: dict[str, Any] | None = None,
        timeout: float | None = None,
    ) -> dict[str, Any]:
        """Send a request and return the response body.

        Raises:
            DAPTimeoutError: No response within the timeout
            DAPError: The agent rejected the request or the connection closed
        """
        if self._closed:
            raise DAPError(
                code="DAP_CONNECTION_CLOSED",
                message=f"Connection closed before '{command}'",
            )

        timeout = timeout or self._timeout
        self._seq += 1
        seq = self._seq
        future: asyncio.Future[dict[str, Any]] = asyncio.get_running_loop().create_future()
        self._pending[seq] = future

        try:
            self._writer.write(
                encode_message(
                    {
                        "seq": seq,
                        "type": "request",
                        "command": command,
                        "arguments": arguments or {},
                    }
                )
            )
            await self._writer.drain()
            logger.debug(f"DAP >> {command}")
            response = await asyncio.wait_for(future, timeout=timeout)
        except asyncio.TimeoutError:
            raise DAPTimeoutError(command, timeout) from None
        except asyncio.CancelledError:
            if not self._closed:
                raise
            raise DAPError(
                code="DAP_CONNECTION_CLOSED",
                message=f"Connection closed during '{command}'",
            ) from None
        finally:
            self._pending.pop(seq, None)

        if not response.get("success", False):
            raise DAPError(
                code="DAP_REQUEST_FAILED",
                message=response.get("message") or f"'{command}' failed",
                details=response,
            )
        body: dict[str, Any] = response.get("body") or {}
        return body

    def _fail_pending(self) -> None:
        for future in self._pending.values():
            if not future.done():
                future.cancel()
        self._pending.clear()

    async def _read_loop(self) -> None:
        try:
            while not self._closed:
                message = await read_message(self._reader)
                if message is None:
                    break
                await self._dispatch(message)
        except asyncio.CancelledError:
            return
        except (asyncio.IncompleteReadError, ConnectionError, ValueError) as e:
            logger.debug(f"DAP connection lost: {e}")

        if self._closed:
            return
        self._closed = True
        self._fail_pending()
        if self._on_close:
            try:
                await self._on_close()
            except Exception as e:
                logger.error(f"Close handler error: {e}")

    async def _dispatch(self, message: dict[str, Any]) -> None:
        kind = message.get("type")
        if kind == "response":
            future = self._pending.get(message.get("request_seq", -1))
            if future and not future.done():
                future.set_result(message)
        elif kind == "event" and self._on_event:
            event = message.get("event", "")
            logger.debug(f"DAP << event:{event}")
            try:
                await self._on_event(event, message.get("body") or {})
            except Exception as e:
                logger.error(f"Event handler error: {e}")
