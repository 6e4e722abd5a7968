"""Tests for the per-connection session state machine."""

import asyncio
import logging

import pytest

from core.exceptions import TransportError
from core.session import ChatSession, SessionState


@pytest.mark.asyncio
@pytest.mark.parametrize("room_id, identity", [(None, "alice"), ("lobby", None), ("", "alice"), ("lobby", "")])
async def test_missing_parameters_close_with_policy_violation(manager, make_connection, room_id, identity):
    conn = make_connection()
    session = ChatSession(conn, manager, room_id, identity)

    await session.run()

    assert conn.close_code == 1008
    assert conn.close_reason == "Room and nick are required"
    assert conn.sent == []
    assert len(manager.store) == 0
    assert session.state is SessionState.CLOSED


@pytest.mark.asyncio
async def test_duplicate_nick_gets_error_then_close(manager, make_connection):
    first, second = make_connection(), make_connection()
    await manager.join(first, "lobby", "alice")

    session = ChatSession(second, manager, "lobby", "alice")
    await session.run()

    assert second.events == [{"type": "error", "message": "Nickname already taken in this room"}]
    assert second.close_code == 1008
    assert second.close_reason == "Nickname already taken"
    assert manager.store.get("lobby").identities() == ["alice"]
    assert all(event["users"] == ["alice"] for event in first.events_of("userList"))


@pytest.mark.asyncio
async def test_session_relays_messages_until_close(manager, make_connection):
    watcher = make_connection()
    await manager.join(watcher, "lobby", "bob")
    conn = make_connection()
    conn.feed('{"type": "typing", "isTyping": true}', "hello", "   ")
    conn.hang_up()

    session = ChatSession(conn, manager, "lobby", "alice")
    await session.run()

    assert session.state is SessionState.CLOSED
    assert [e["text"] for e in watcher.events_of("message")] == ["hello"]
    assert watcher.events_of("system")[-1]["text"] == "alice left the room"
    assert watcher.events_of("userList")[-1]["users"] == ["bob"]
    assert manager.store.get("lobby").identities() == ["bob"]


@pytest.mark.asyncio
async def test_oversized_message_keeps_session_active(manager, make_connection):
    conn = make_connection()
    conn.feed("x" * 501, "short")
    conn.hang_up()

    await ChatSession(conn, manager, "lobby", "alice").run()

    errors = conn.events_of("error")
    assert errors == [{"type": "error", "message": "Message too long (max 500 characters)"}]
    assert [e["text"] for e in conn.events_of("message")] == ["short"]


@pytest.mark.asyncio
async def test_processing_fault_is_reported_not_fatal(manager, make_connection, monkeypatch):
    conn = make_connection()
    original = manager.handle_payload
    calls = []

    async def flaky(room, client, raw):
        calls.append(raw)
        if raw == "boom":
            raise KeyError("boom")
        await original(room, client, raw)

    monkeypatch.setattr(manager, "handle_payload", flaky)
    conn.feed("boom", "after")
    conn.hang_up()

    await ChatSession(conn, manager, "lobby", "alice").run()

    assert calls == ["boom", "after"]
    assert {"type": "error", "message": "Error processing message"} in conn.events
    assert [e["text"] for e in conn.events_of("message")] == ["after"]


@pytest.mark.asyncio
async def test_last_member_leaving_removes_room(manager, make_connection):
    conn = make_connection()
    conn.feed("only me")
    conn.hang_up()

    await ChatSession(conn, manager, "lobby", "alice").run()

    assert "lobby" not in manager.store


@pytest.mark.asyncio
async def test_transport_error_drives_cleanup(manager, make_connection):
    watcher = make_connection()
    await manager.join(watcher, "lobby", "bob")
    conn = make_connection()

    async def broken():
        raise TransportError("connection reset")
        yield

    conn.messages = broken
    await ChatSession(conn, manager, "lobby", "alice").run()

    assert manager.store.get("lobby").identities() == ["bob"]
    assert watcher.events_of("system")[-1]["text"] == "alice left the room"


@pytest.mark.asyncio
async def test_keep_alive_logs_idle_time_while_open(manager, make_connection, settings, caplog):
    """Each probe logs how long the connection has been idle."""
    caplog.set_level(logging.DEBUG, logger="core.session")
    conn = make_connection()
    session = ChatSession(conn, manager, "lobby", "alice")
    task = asyncio.create_task(session.run())

    await asyncio.sleep(settings.ping_interval * 5)
    assert "Ping to alice in room lobby (idle " in caplog.text
    assert session.state is SessionState.ACTIVE

    conn.hang_up()
    await task
    assert session.state is SessionState.CLOSED
    assert session._probe is None


@pytest.mark.asyncio
async def test_keep_alive_stops_once_connection_is_dead(manager, make_connection, settings, caplog):
    caplog.set_level(logging.DEBUG, logger="core.session")
    conn = make_connection()
    session = ChatSession(conn, manager, "lobby", "alice")
    task = asyncio.create_task(session.run())
    await asyncio.sleep(settings.ping_interval)

    conn.drop()
    await asyncio.sleep(settings.ping_interval * 5)
    assert "Stopping pings for alice: connection not open" in caplog.text
    assert session._probe.done()

    conn.hang_up()
    await task


@pytest.mark.asyncio
async def test_ping_reports_idle_time_since_last_inbound_frame(make_connection):
    conn = make_connection()
    conn.last_seen -= 10
    assert conn.ping() >= 10

    conn.touch()
    assert conn.ping() < 10

    conn.drop()
    assert conn.ping() is None


@pytest.mark.asyncio
async def test_session_closed_after_reap_does_not_double_notify(manager, make_connection):
    watcher = make_connection()
    await manager.join(watcher, "lobby", "bob")
    conn = make_connection()
    session = ChatSession(conn, manager, "lobby", "alice")
    task = asyncio.create_task(session.run())
    await asyncio.sleep(0.01)

    assert await manager.leave(session.room, session.client) is True
    conn.terminate()
    await task

    leaves = [e for e in watcher.events_of("system") if e["text"] == "alice left the room"]
    assert len(leaves) == 1
