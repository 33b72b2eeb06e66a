"""
Unit tests for WebSocket manager.
Tests connection management, message sending, and timeout handling.
"""

import asyncio
import json
from datetime import timedelta
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio

from arena.services import websocket_manager
from arena.services.websocket_manager import (
    WebSocketManager,
    get_websocket_manager,
    WEBSOCKET_TIMEOUT_SECONDS,
)
from arena.utils.datetime_utils import utcnow


@pytest_asyncio.fixture
async def ws_manager():
    """Create a fresh WebSocket manager for each test."""
    return WebSocketManager()


def make_socket():
    ws = AsyncMock()
    ws.send_text = AsyncMock()
    ws.close = AsyncMock()
    return ws


@pytest.mark.asyncio
async def test_connect_and_disconnect(ws_manager):
    ws1, ws2 = make_socket(), make_socket()

    await ws_manager.connect("alice", ws1)
    await ws_manager.connect("alice", ws2)
    assert await ws_manager.get_connection_count("alice") == 2

    await ws_manager.disconnect("alice", ws1)
    assert await ws_manager.get_connection_count("alice") == 1
    assert ws1 not in ws_manager.connection_timestamps

    await ws_manager.disconnect("alice", ws2)
    assert "alice" not in ws_manager.active_connections


@pytest.mark.asyncio
async def test_send_to_user_reaches_every_socket(ws_manager):
    ws1, ws2 = make_socket(), make_socket()
    await ws_manager.connect("alice", ws1)
    await ws_manager.connect("alice", ws2)

    sent = await ws_manager.send_to_user("alice", {"type": "profile_updated", "deposit_balance": 40.0})

    assert sent is True
    for ws in (ws1, ws2):
        payload = json.loads(ws.send_text.await_args.args[0])
        assert payload == {"type": "profile_updated", "deposit_balance": 40.0}


@pytest.mark.asyncio
async def test_send_to_offline_user(ws_manager):
    assert await ws_manager.send_to_user("nobody", {"type": "ping"}) is False


@pytest.mark.asyncio
async def test_failed_socket_is_dropped(ws_manager):
    healthy, broken = make_socket(), make_socket()
    broken.send_text.side_effect = RuntimeError("connection reset")
    await ws_manager.connect("alice", healthy)
    await ws_manager.connect("alice", broken)

    assert await ws_manager.send_to_user("alice", {"type": "support_message"}) is True

    assert await ws_manager.get_connection_count("alice") == 1
    assert broken not in ws_manager.connection_timestamps


@pytest.mark.asyncio
async def test_send_to_users_counts_reached(ws_manager):
    await ws_manager.connect("alice", make_socket())
    await ws_manager.connect("bob", make_socket())

    reached = await ws_manager.send_to_users(["alice", "bob", "carol", "alice"], {"type": "x"})

    assert reached == 2


@pytest.mark.asyncio
async def test_cleanup_stale_connections(ws_manager):
    fresh, stale = make_socket(), make_socket()
    await ws_manager.connect("alice", fresh)
    await ws_manager.connect("bob", stale)
    ws_manager.connection_timestamps[stale] = utcnow() - timedelta(seconds=WEBSOCKET_TIMEOUT_SECONDS + 5)

    removed = await ws_manager.cleanup_stale_connections()

    assert removed == 1
    stale.close.assert_awaited_once()
    assert await ws_manager.get_connection_count("bob") == 0
    assert await ws_manager.get_connection_count("alice") == 1


@pytest.mark.asyncio
async def test_update_activity_keeps_socket_alive(ws_manager):
    ws = make_socket()
    await ws_manager.connect("alice", ws)
    ws_manager.connection_timestamps[ws] = utcnow() - timedelta(seconds=WEBSOCKET_TIMEOUT_SECONDS + 5)

    await ws_manager.update_activity(ws)

    assert await ws_manager.cleanup_stale_connections() == 0


@pytest.mark.asyncio
async def test_cleanup_worker_drops_idle_sockets(ws_manager, monkeypatch):
    monkeypatch.setattr(websocket_manager, "CLEANUP_INTERVAL_SECONDS", 0.01)
    idle = make_socket()
    await ws_manager.connect("bob", idle)
    ws_manager.connection_timestamps[idle] = utcnow() - timedelta(seconds=WEBSOCKET_TIMEOUT_SECONDS + 5)

    ws_manager.start_cleanup_worker()
    try:
        for _ in range(100):
            if idle.close.await_count:
                break
            await asyncio.sleep(0.01)
    finally:
        ws_manager.stop_cleanup_worker()

    assert await ws_manager.get_connection_count("bob") == 0
    idle.close.assert_awaited_once()


def test_get_websocket_manager_singleton():
    assert get_websocket_manager() is get_websocket_manager()
