"""Debug launcher that attaches to debugpy over DAP."""

import asyncio
import contextlib
import logging
from typing import Any

from debugpy_attacher.adapters.base import DebugLauncher, DebugSessionInfo
from debugpy_attacher.adapters.dap_client import DAPClient
from debugpy_attacher.config import settings
from debugpy_attacher.core.exceptions import (
    AttachConnectionRefusedError,
    AttachError,
    AttachTimeoutError,
    DAPError,
    DAPTimeoutError,
)
from debugpy_attacher.models.attach import AttachProfile

logger = logging.getLogger(__name__)

SESSION_END_EVENTS = ("terminated", "exited")


class DebugpyLauncher(DebugLauncher):
    """Connects to the socket opened by ``debugpy.listen()`` and attaches.

    The attach sequence is:
    1. Send 'initialize'
    2. Send 'attach' with the profile as arguments
    3. Wait for 'initialized' event, send 'configurationDone'
    4. Receive 'attach' response
    """

    def __init__(self, timeout: float | None = None):
        super().__init__()
        self.timeout = timeout or settings.dap_timeout_seconds
        self._clients: dict[str, DAPClient] = {}

    async def start_debugging(self, profile: AttachProfile) -> bool:
        host = profile.connect.host
        port = profile.port

        try:
            reader, writer = await asyncio.wait_for(
                asyncio.open_connection(host, int(port)),
                timeout=self.timeout,
            )
        except ConnectionRefusedError as e:
            raise AttachConnectionRefusedError(port, str(e)) from e
        except asyncio.TimeoutError:
            raise AttachTimeoutError(port, self.timeout) from None
        except OSError as e:
            raise AttachError(port, str(e)) from e

        session = DebugSessionInfo(
            name=profile.name,
            port=port,
            configuration=profile.to_launch_arguments(),
        )
        initialized = asyncio.Event()

        async def on_event(event: str, body: dict[str, Any]) -> None:
            if event == "initialized":
                initialized.set()
            elif event in SESSION_END_EVENTS:
                await self._finish(session)

        async def on_close() -> None:
            await self._finish(session)

        client = DAPClient(
            reader,
            writer,
            on_event=on_event,
            on_close=on_close,
            timeout=self.timeout,
        )
        self._clients[session.id] = client
        await client.start()

        async def send_attach() -> None:
            await client.request("attach", profile.to_launch_arguments())

        async def wait_configure_done() -> None:
            await asyncio.wait_for(initialized.wait(), timeout=self.timeout)
            await client.request("configurationDone", {})

        try:
            await client.request(
                "initialize",
                {
                    "clientID": "debugpy-attacher",
                    "clientName": "debugpy-attacher",
                    "adapterID": "debugpy",
                    "pathFormat": "path",
                    "linesStartAt1": True,
                    "columnsStartAt1": True,
                },
            )
            steps = [
                asyncio.ensure_future(send_attach()),
                asyncio.ensure_future(wait_configure_done()),
            ]
            try:
                await asyncio.gather(*steps)
            finally:
                for step in steps:
                    step.cancel()
        except (DAPTimeoutError, asyncio.TimeoutError):
            await self._discard(session)
            raise AttachTimeoutError(port, self.timeout) from None
        except DAPError as e:
            await self._discard(session)
            raise AttachError(port, e.message) from e
        except OSError as e:
            await self._discard(session)
            raise AttachError(port, str(e)) from e

        if not client.is_connected:
            # Debuggee went away right after attaching
            await self._discard(session)
            return False

        logger.info(f"Attached to debugpy on {host}:{port}")
        self._emit_start(session)
        return True

    async def _discard(self, session: DebugSessionInfo) -> None:
        client = self._clients.pop(session.id, None)
        if client:
            await client.stop()

    async def _finish(self, session: DebugSessionInfo) -> None:
        await self._discard(session)
        self._emit_end(session)

    async def stop_all(self) -> None:
        """Disconnect from every debuggee without terminating it."""
        for session in self.active_sessions:
            client = self._clients.get(session.id)
            if client and client.is_connected:
                with contextlib.suppress(DAPError, asyncio.TimeoutError, OSError):
                    await client.request("disconnect", {"terminateDebuggee": False})
            await self._finish(session)
