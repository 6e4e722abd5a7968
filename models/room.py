"""Room state: members, recent history and typing indicators."""

import asyncio
from collections import deque
from dataclasses import dataclass, field
from typing import Deque, List, Optional, Set

from models.client import Client
from models.message import Message

DEFAULT_HISTORY_CAPACITY = 50


class HistoryBuffer:
    """Bounded FIFO of recent messages, oldest evicted first."""

    def __init__(self, capacity: int = DEFAULT_HISTORY_CAPACITY):
        if capacity < 1:
            raise ValueError("History capacity must be positive")
        self.capacity = capacity
        self._messages: Deque[Message] = deque()

    def append(self, message: Message) -> None:
        self._messages.append(message)
        while len(self._messages) > self.capacity:
            self._messages.popleft()

    def snapshot(self) -> List[Message]:
        """Copy of the buffer, oldest first."""
        return list(self._messages)

    def clear(self) -> None:
        self._messages.clear()

    def __len__(self) -> int:
        return len(self._messages)


@dataclass(eq=False)
class Room:
    """
    One named broadcast domain.

    All reads and mutations of a room go through `lock`; the store drops
    the room as soon as its client list becomes empty.
    """

    id: str
    history: HistoryBuffer = field(default_factory=HistoryBuffer)
    clients: List[Client] = field(default_factory=list)
    typing: Set[str] = field(default_factory=set)
    lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)

    def identities(self) -> List[str]:
        """Member identities in join order."""
        return [client.identity for client in self.clients]

    def typing_identities(self) -> List[str]:
        return sorted(self.typing)

    def open_clients(self) -> List[Client]:
        return [client for client in self.clients if client.is_open]

    def find_open(self, identity: str) -> Optional[Client]:
        """Return the member holding `identity` on an open connection, if any."""
        for client in self.clients:
            if client.identity == identity and client.is_open:
                return client
        return None

    def is_empty(self) -> bool:
        return not self.clients

    def discard_state(self) -> None:
        """Forget members, history and typing flags."""
        self.clients.clear()
        self.history.clear()
        self.typing.clear()
