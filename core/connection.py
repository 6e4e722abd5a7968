"""Connection wrapper adapting a WebSocket to the relay's transport interface."""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import AsyncIterator, Optional

from fastapi import WebSocket

from core.exceptions import TransportError

logger = logging.getLogger(__name__)

NO_STATUS_RECEIVED = 1005


class ConnectionState(Enum):
    """Transport-level state of a connection."""
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSING = "closing"
    CLOSED = "closed"


class Connection(ABC):
    """
    Bidirectional message transport as seen by the relay.

    Sends never wait for network I/O; a send on a connection that is not
    open is skipped.
    """

    def __init__(self, label: str = ""):
        self.state = ConnectionState.CONNECTING
        self.label = label
        self.last_seen = time.monotonic()

    @property
    def is_open(self) -> bool:
        return self.state is ConnectionState.OPEN

    @abstractmethod
    def send(self, payload: str) -> None:
        """Queue a text frame for delivery."""

    @abstractmethod
    async def close(self, code: int = 1000, reason: str = "") -> None:
        """Send a close frame after pending frames and wait until it is written."""

    @abstractmethod
    def terminate(self) -> None:
        """Drop the connection immediately without a close handshake."""

    @abstractmethod
    def messages(self) -> AsyncIterator[str]:
        """
        Iterate inbound text payloads until the connection closes.

        Raises:
            TransportError: If the transport fails while receiving
        """

    def touch(self) -> None:
        """Mark inbound activity on the connection."""
        self.last_seen = time.monotonic()

    def ping(self) -> Optional[float]:
        """
        Keep-alive probe.

        Returns the seconds since the last inbound frame, or None when the
        connection is no longer open.
        """
        if not self.is_open:
            return None
        return time.monotonic() - self.last_seen


@dataclass(frozen=True)
class _CloseFrame:
    code: int
    reason: str


class WebSocketConnection(Connection):
    """
    Connection backed by a FastAPI WebSocket.

    Outbound frames go through a queue drained by a writer task, so
    `send` returns immediately. Protocol-level ping frames are produced
    by uvicorn (`ws_ping_interval`); `ping` only records the probe.
    """

    def __init__(self, websocket: WebSocket):
        client = websocket.client
        super().__init__(label=f"{client.host}:{client.port}" if client else "unknown")
        self._websocket = websocket
        self._outbox: asyncio.Queue = asyncio.Queue()
        self._closed = asyncio.Event()
        self._writer: Optional[asyncio.Task] = None

    async def accept(self) -> None:
        await self._websocket.accept()
        self.state = ConnectionState.OPEN
        self._writer = asyncio.create_task(self._drain())

    def send(self, payload: str) -> None:
        if not self.is_open:
            logger.debug(f"Skipping send to {self.label}: connection is {self.state.value}")
            return
        self._outbox.put_nowait(payload)

    async def close(self, code: int = 1000, reason: str = "") -> None:
        if self.state is ConnectionState.CONNECTING:
            await self._websocket.close(code=code, reason=reason)
            self._mark_closed()
            return
        if self.state is ConnectionState.OPEN:
            self.state = ConnectionState.CLOSING
            self._outbox.put_nowait(_CloseFrame(code, reason))
        await self._closed.wait()

    def terminate(self) -> None:
        self._mark_closed()
        if self._writer is not None and not self._writer.done():
            self._writer.cancel()

    async def messages(self) -> AsyncIterator[str]:
        while self.is_open:
            receiver = asyncio.ensure_future(self._websocket.receive())
            closer = asyncio.ensure_future(self._closed.wait())
            try:
                done, _ = await asyncio.wait({receiver, closer}, return_when=asyncio.FIRST_COMPLETED)
            finally:
                for task in (receiver, closer):
                    if not task.done():
                        task.cancel()

            if receiver not in done:
                return

            try:
                message = receiver.result()
            except Exception as e:
                self.terminate()
                raise TransportError(f"Receive from {self.label} failed: {e}") from e

            if message["type"] == "websocket.disconnect":
                logger.info(f"{self.label} disconnected ({message.get('code', NO_STATUS_RECEIVED)})")
                self.terminate()
                return

            self.touch()
            text = message.get("text")
            if text is None:
                text = (message.get("bytes") or b"").decode("utf-8", errors="replace")
            yield text

    async def _drain(self) -> None:
        """Write queued frames in order until a close frame or a failed send."""
        try:
            while True:
                frame = await self._outbox.get()
                try:
                    if isinstance(frame, _CloseFrame):
                        await self._websocket.close(code=frame.code, reason=frame.reason)
                        return
                    await self._websocket.send_text(frame)
                except Exception as e:
                    logger.info(f"Failed to send to {self.label}: {e}")
                    return
        finally:
            self._mark_closed()

    def _mark_closed(self) -> None:
        self.state = ConnectionState.CLOSED
        self._closed.set()
