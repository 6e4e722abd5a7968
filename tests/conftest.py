"""Shared fixtures for relay tests."""

import asyncio
import json
from typing import Any, AsyncIterator, Dict, List

import pytest

from core.config import Settings
from core.connection import Connection, ConnectionState
from core.room_manager import RoomManager
from core.room_store import RoomStore

_HANG_UP = object()


class FakeConnection(Connection):
    """In-memory connection that records every event sent to it."""

    def __init__(self, label: str = "fake"):
        super().__init__(label=label)
        self.state = ConnectionState.OPEN
        self.sent: List[str] = []
        self.close_code = None
        self.close_reason = None
        self.terminated = False
        self._inbound: asyncio.Queue = asyncio.Queue()

    @property
    def events(self) -> List[Dict[str, Any]]:
        return [json.loads(payload) for payload in self.sent]

    def events_of(self, event_type: str) -> List[Dict[str, Any]]:
        return [event for event in self.events if event["type"] == event_type]

    def send(self, payload: str) -> None:
        if self.is_open:
            self.sent.append(payload)

    async def close(self, code: int = 1000, reason: str = "") -> None:
        if self.state is ConnectionState.CLOSED:
            return
        self.close_code = code
        self.close_reason = reason
        self.state = ConnectionState.CLOSED
        self._inbound.put_nowait(_HANG_UP)

    def terminate(self) -> None:
        self.terminated = True
        self.state = ConnectionState.CLOSED
        self._inbound.put_nowait(_HANG_UP)

    def drop(self) -> None:
        """Go dead without any close notification."""
        self.state = ConnectionState.CLOSED

    def feed(self, *payloads: str) -> None:
        for payload in payloads:
            self._inbound.put_nowait(payload)

    def hang_up(self) -> None:
        self._inbound.put_nowait(_HANG_UP)

    async def messages(self) -> AsyncIterator[str]:
        while True:
            payload = await self._inbound.get()
            if payload is _HANG_UP:
                self.state = ConnectionState.CLOSED
                return
            self.touch()
            yield payload


@pytest.fixture
def settings():
    """Settings with short timers for testing."""
    return Settings(ping_interval=0.01, terminate_sweep_interval=0.01, prune_sweep_interval=0.01)


@pytest.fixture
def store(settings):
    return RoomStore(history_capacity=settings.history_capacity)


@pytest.fixture
def manager(store, settings):
    return RoomManager(store, settings)


@pytest.fixture
def make_connection():
    """Factory for fake connections."""
    def factory(label: str = "fake") -> FakeConnection:
        return FakeConnection(label)
    return factory
