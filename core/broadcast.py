"""Serialization and fan-out of events to room members."""

import json
import logging
from typing import Any, Dict

from core.connection import Connection
from models.events import system_event, typing_event, user_list_event
from models.room import Room

logger = logging.getLogger(__name__)


class Broadcaster:
    """Sends events to single connections or to every open member of a room."""

    @staticmethod
    def encode(event: Dict[str, Any]) -> str:
        return json.dumps(event, ensure_ascii=False)

    def unicast(self, connection: Connection, event: Dict[str, Any]) -> None:
        if connection.is_open:
            connection.send(self.encode(event))

    def broadcast(self, room: Room, event: Dict[str, Any]) -> int:
        """
        Send `event` to every open connection in `room`.

        Closed connections are skipped, not removed. Returns the number of
        connections the event was queued for.
        """
        payload = self.encode(event)
        sent = 0
        for client in room.clients:
            if client.is_open:
                client.connection.send(payload)
                sent += 1
        logger.debug(f"Broadcast {event['type']} to {sent} client(s) in room {room.id}")
        return sent

    def broadcast_user_list(self, room: Room) -> None:
        self.broadcast(room, user_list_event(room.identities()))

    def broadcast_typing(self, room: Room) -> None:
        self.broadcast(room, typing_event(room.typing_identities()))

    def broadcast_system(self, room: Room, text: str) -> None:
        self.broadcast(room, system_event(text))
