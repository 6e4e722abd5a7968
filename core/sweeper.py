"""Background passes that reap dead connections and stale rooms."""

import asyncio
import logging
from typing import Awaitable, Callable, List

from core.config import Settings
from core.room_manager import RoomManager
from models.room import Room

logger = logging.getLogger(__name__)


class LivenessSweeper:
    """
    Periodically checks every room for connections that are no longer open.

    Two passes run on independent timers:
    - `reap_dead_connections` terminates dead connections and removes
      their clients the same way an explicit close would.
    - `prune_rooms` re-filters each client list to open connections and
      drops empty rooms.
    Both take each room's lock, like any other room event.
    """

    def __init__(self, manager: RoomManager, settings: Settings = None):
        self.manager = manager
        self.settings = settings or manager.settings
        self._tasks: List[asyncio.Task] = []

    @property
    def running(self) -> bool:
        return bool(self._tasks)

    def start(self) -> None:
        if self._tasks:
            return
        self._tasks = [
            asyncio.create_task(self._every(self.settings.terminate_sweep_interval, self.reap_dead_connections)),
            asyncio.create_task(self._every(self.settings.prune_sweep_interval, self.prune_rooms)),
        ]
        logger.info("Liveness sweeper started")

    async def stop(self) -> None:
        tasks, self._tasks = self._tasks, []
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        if tasks:
            logger.info("Liveness sweeper stopped")

    async def reap_dead_connections(self) -> int:
        """Terminate and remove clients whose connection is not open. Returns the count."""
        reaped = 0
        for room in self.manager.store.rooms():
            async with room.lock:
                if not self.manager.store.is_current(room):
                    continue
                dead = [client for client in room.clients if not client.is_open]
            for client in dead:
                client.connection.terminate()
                if await self.manager.leave(room, client):
                    logger.info(f"Reaped dead connection for {client.identity} in room {room.id}")
                    reaped += 1
        return reaped

    async def prune_rooms(self) -> int:
        """Drop closed clients from every room. Returns the number of rooms changed."""
        changed = 0
        for room in self.manager.store.rooms():
            async with room.lock:
                if self.manager.store.is_current(room) and self._prune(room):
                    changed += 1
        return changed

    def _prune(self, room: Room) -> bool:
        active = room.open_clients()
        if room.clients and len(active) == len(room.clients):
            return False

        room.clients[:] = active
        if not active:
            self.manager.store.remove(room.id)
            logger.info(f"Room {room.id} cleaned up during periodic cleanup")
            return True

        present = set(room.identities())
        if not room.typing <= present:
            room.typing &= present
            self.manager.broadcaster.broadcast_typing(room)
        self.manager.broadcaster.broadcast_user_list(room)
        return True

    async def _every(self, interval: float, sweep: Callable[[], Awaitable[int]]) -> None:
        while True:
            await asyncio.sleep(interval)
            try:
                await sweep()
            except Exception:
                logger.exception(f"Sweep {sweep.__name__} failed")
