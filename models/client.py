"""Client model for participants registered in a room."""

from dataclasses import dataclass, field

from core.connection import Connection
from models.message import now_ms


@dataclass(eq=False)
class Client:
    """Represents one joined connection and the identity it claimed."""

    identity: str
    connection: Connection
    room_id: str
    joined_at: int = field(default_factory=now_ms)

    @property
    def is_open(self) -> bool:
        return self.connection.is_open

    def __repr__(self) -> str:
        return f"Client(identity={self.identity!r}, room_id={self.room_id!r})"
