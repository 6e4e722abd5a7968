"""Per-connection session: join validation, message loop and cleanup."""

import asyncio
import logging
from enum import Enum
from typing import Optional

from core.config import Settings
from core.connection import Connection
from core.exceptions import JoinRejectedError, PayloadRejectedError, TransportError
from core.room_manager import RoomManager
from models.client import Client
from models.events import error_event
from models.room import Room

logger = logging.getLogger(__name__)

MISSING_PARAMETERS = "Room and nick are required"
PROCESSING_FAILED = "Error processing message"


class SessionState(Enum):
    CONNECTING = "connecting"
    VALIDATING = "validating"
    JOINED = "joined"
    ACTIVE = "active"
    CLOSED = "closed"


class ChatSession:
    """
    Drives one client connection from join request to cleanup.

    Connecting -> Validating -> Joined -> Active -> Closed. Any failure
    before Joined goes straight to Closed without touching room
    membership.
    """

    def __init__(self, connection: Connection, manager: RoomManager,
                 room_id: Optional[str], identity: Optional[str], settings: Settings = None):
        self.connection = connection
        self.manager = manager
        self.settings = settings or manager.settings
        self.room_id = room_id
        self.identity = identity
        self.state = SessionState.CONNECTING
        self.room: Optional[Room] = None
        self.client: Optional[Client] = None
        self._probe: Optional[asyncio.Task] = None

    async def run(self) -> None:
        """Run the session until the connection closes."""
        logger.info(f"Connection request: room={self.room_id}, nick={self.identity}")
        try:
            if not await self._join():
                return
            await self._serve()
        except TransportError as e:
            logger.warning(f"Transport error for {self.identity} in room {self.room_id}: {e}")
        finally:
            await self._close()

    async def _join(self) -> bool:
        if not self.room_id or not self.identity:
            logger.info("Missing room or nick, closing connection")
            await self.connection.close(self.settings.policy_close_code, MISSING_PARAMETERS)
            return False

        self.state = SessionState.VALIDATING
        try:
            self.room, self.client = await self.manager.join(self.connection, self.room_id, self.identity)
        except JoinRejectedError as e:
            logger.warning(f"Join rejected: {e}")
            if e.notice:
                self.manager.broadcaster.unicast(self.connection, error_event(e.notice))
            await self.connection.close(self.settings.policy_close_code, e.close_reason)
            return False

        self.state = SessionState.JOINED
        self._probe = asyncio.create_task(self._keep_alive())
        self.state = SessionState.ACTIVE
        return True

    async def _serve(self) -> None:
        async for payload in self.connection.messages():
            try:
                await self.manager.handle_payload(self.room, self.client, payload)
            except PayloadRejectedError as e:
                self.manager.broadcaster.unicast(self.connection, error_event(str(e)))
            except Exception:
                logger.exception(f"Error processing message from {self.identity} in room {self.room_id}")
                self.manager.broadcaster.unicast(self.connection, error_event(PROCESSING_FAILED))

    async def _keep_alive(self) -> None:
        while True:
            await asyncio.sleep(self.settings.ping_interval)
            idle = self.connection.ping()
            if idle is None:
                logger.debug(f"Stopping pings for {self.identity}: connection not open")
                return
            logger.debug(f"Ping to {self.identity} in room {self.room_id} (idle {idle:.1f}s)")

    async def _close(self) -> None:
        if self.state is SessionState.CLOSED:
            return
        joined = self.state is SessionState.ACTIVE
        self.state = SessionState.CLOSED

        if self._probe is not None:
            self._probe.cancel()
            self._probe = None
        if joined:
            logger.info(f"User {self.identity} disconnected from room {self.room_id}")
            await self.manager.leave(self.room, self.client)
