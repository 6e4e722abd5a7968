"""Room-level operations shared by connection sessions and the sweeper."""

import asyncio
import logging
from typing import Dict, Tuple

from core.broadcast import Broadcaster
from core.config import Settings
from core.connection import Connection
from core.exceptions import JoinRejectedError, PayloadRejectedError
from core.room_store import RoomStore
from models.client import Client
from models.events import (
    connected_event,
    decode_inbound,
    history_event,
    message_event,
    typing_event,
    TypingControl,
)
from models.message import Message, trim_text
from models.room import Room

logger = logging.getLogger(__name__)


class RoomManager:
    """
    Joins, leaves and routes messages for every room.

    Each operation holds the affected room's lock for its whole duration,
    so membership, history and typing changes of one room never
    interleave.
    """

    def __init__(self, store: RoomStore, settings: Settings, broadcaster: Broadcaster = None):
        self.store = store
        self.settings = settings
        self.broadcaster = broadcaster or Broadcaster()

    async def join(self, connection: Connection, room_id: str, identity: str) -> Tuple[Room, Client]:
        """
        Register a connection in a room and send it the room snapshot.

        Args:
            connection: The joining connection
            room_id: Room to join, created if unknown
            identity: Display name claimed by the connection

        Returns:
            The room joined and the registered client

        Raises:
            JoinRejectedError: If an open connection already holds `identity`
        """
        async with self.store.locked(room_id) as room:
            if room.find_open(identity) is not None:
                raise JoinRejectedError(
                    f"Nickname {identity!r} already taken in room {room_id!r}",
                    close_reason="Nickname already taken",
                    notice="Nickname already taken in this room"
                )

            client = Client(identity=identity, connection=connection, room_id=room_id)
            room.clients.append(client)
            logger.info(f"User {identity} joined room {room_id}")

            self.broadcaster.unicast(connection, connected_event())
            self.broadcaster.unicast(connection, history_event(room.history.snapshot()))
            self.broadcaster.broadcast_user_list(room)
            self.broadcaster.unicast(connection, typing_event(room.typing_identities()))
            self.broadcaster.broadcast_system(room, f"{identity} joined the room")
            return room, client

    async def handle_payload(self, room: Room, client: Client, raw: str) -> None:
        """
        Process one inbound payload from `client`.

        Raises:
            PayloadRejectedError: If the chat text is too long
        """
        decoded = decode_inbound(raw)
        if isinstance(decoded, TypingControl):
            await self.set_typing(room, client, decoded.is_typing)
            return

        text = trim_text(raw)
        if not text:
            return
        limit = self.settings.max_message_length
        if len(text) > limit:
            raise PayloadRejectedError(f"Message too long (max {limit} characters)")

        async with room.lock:
            if client not in room.clients:
                logger.debug(f"Dropping message from departed client {client.identity}")
                return
            logger.info(f"Message from {client.identity} in room {room.id}: {text}")
            room.typing.discard(client.identity)
            self.broadcaster.broadcast_typing(room)

            message = Message(sender=client.identity, text=text)
            room.history.append(message)
            self.broadcaster.broadcast(room, message_event(message))

    async def set_typing(self, room: Room, client: Client, is_typing: bool) -> None:
        """Update the typing flag of `client` and always rebroadcast the typing set."""
        async with room.lock:
            if client not in room.clients:
                return
            if is_typing:
                room.typing.add(client.identity)
            else:
                room.typing.discard(client.identity)
            self.broadcaster.broadcast_typing(room)

    async def leave(self, room: Room, client: Client) -> bool:
        """
        Remove `client` from its room, notifying the remaining members.

        Returns False if the client had already been removed.
        """
        async with room.lock:
            if client not in room.clients:
                return False
            room.clients.remove(client)
            logger.info(f"User {client.identity} left room {room.id}")

            if client.identity in room.typing and room.find_open(client.identity) is None:
                room.typing.discard(client.identity)
                self.broadcaster.broadcast_typing(room)

            if room.is_empty():
                self.store.remove(room.id)
            else:
                self.broadcaster.broadcast_system(room, f"{client.identity} left the room")
                self.broadcaster.broadcast_user_list(room)
            return True

    def stats(self) -> Dict[str, int]:
        counts = {"rooms": len(self.store), "connections": 0}

        def count(room: Room) -> None:
            counts["connections"] += len(room.open_clients())

        self.store.for_each_room(count)
        return counts

    async def shutdown(self) -> None:
        """Close every open connection with the going-away code."""
        connections = [
            client.connection
            for room in self.store.rooms()
            for client in room.open_clients()
        ]
        logger.info(f"Closing {len(connections)} connection(s)")
        await asyncio.gather(*(
            connection.close(self.settings.shutdown_close_code, self.settings.shutdown_close_reason)
            for connection in connections
        ))
