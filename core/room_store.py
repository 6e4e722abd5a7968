"""Registry of live rooms keyed by room id."""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable, Dict, List, Optional

from models.room import HistoryBuffer, Room

logger = logging.getLogger(__name__)


class RoomStore:
    """
    Maps room ids to Room state.

    Rooms are created lazily on first join and removed once empty. The
    dict itself is only touched from the event loop; a room's contents
    must only be read or changed while holding `room.lock`, which
    `locked` takes care of.
    """

    def __init__(self, history_capacity: int = 50):
        self.history_capacity = history_capacity
        self._rooms: Dict[str, Room] = {}

    def get_or_create(self, room_id: str) -> Room:
        """Return the room for `room_id`, creating an empty one if needed."""
        room = self._rooms.get(room_id)
        if room is None:
            room = Room(id=room_id, history=HistoryBuffer(self.history_capacity))
            self._rooms[room_id] = room
            logger.info(f"Room {room_id} created")
        return room

    def get(self, room_id: str) -> Optional[Room]:
        return self._rooms.get(room_id)

    def remove(self, room_id: str) -> None:
        """Drop a room together with its history and typing state."""
        room = self._rooms.pop(room_id, None)
        if room is not None:
            room.discard_state()
            logger.info(f"Room {room_id} cleaned up")

    def is_current(self, room: Room) -> bool:
        """Whether `room` is still the registered room for its id."""
        return self._rooms.get(room.id) is room

    def rooms(self) -> List[Room]:
        """Snapshot of the registered rooms."""
        return list(self._rooms.values())

    def for_each_room(self, fn: Callable[[Room], None]) -> None:
        for room in self.rooms():
            fn(room)

    @asynccontextmanager
    async def locked(self, room_id: str) -> AsyncIterator[Room]:
        """
        Get or create a room and hold its lock.

        If the room is torn down while waiting for the lock, the wait is
        retried against the replacement room.
        """
        while True:
            room = self.get_or_create(room_id)
            async with room.lock:
                if self.is_current(room):
                    yield room
                    return

    def clear(self) -> None:
        for room_id in list(self._rooms):
            self.remove(room_id)

    def __contains__(self, room_id: str) -> bool:
        return room_id in self._rooms

    def __len__(self) -> int:
        return len(self._rooms)
