"""Tests for the connection registry."""
import asyncio

import pytest

from chat_relay.registry import Connection, ConnectionRegistry
from chat_relay.relay_models import Identity
from .conftest import FakeWebSocket, open_connection

ALICE = Identity(id="u1", display_name="A", verified=True)
BOB = Identity(id="u2", display_name="B", verified=True)
CAROL = Identity(id="u3", display_name="C", verified=True)


@pytest.mark.asyncio
async def test_register_and_lookup():
    registry = ConnectionRegistry()
    assert await registry.lookup("u1") is None

    connection = await open_connection(registry, ALICE)
    assert await registry.lookup("u1") is connection
    assert registry.active_count == 1
    assert registry.online_ids() == {"u1"}


@pytest.mark.asyncio
async def test_register_supersedes_previous_connection():
    registry = ConnectionRegistry()
    first = await open_connection(registry, ALICE)
    second = await open_connection(registry, ALICE)

    assert await registry.lookup("u1") is second
    assert registry.active_count == 1
    assert first.websocket.close_code == 1000
    assert not first.is_open
    assert first.websocket.sent == []
    assert second.is_open


@pytest.mark.asyncio
async def test_unregister_ignores_stale_connection():
    registry = ConnectionRegistry()
    first = await open_connection(registry, ALICE)
    second = await open_connection(registry, ALICE)

    # Late close callback of the superseded socket must not evict the new one
    assert await registry.unregister("u1", first) is False
    assert await registry.lookup("u1") is second

    assert await registry.unregister("u1", second) is True
    assert await registry.lookup("u1") is None
    assert await registry.unregister("u1", second) is False


@pytest.mark.asyncio
async def test_broadcast_skips_offline_and_closed_targets():
    registry = ConnectionRegistry()
    alice = await open_connection(registry, ALICE)
    bob = await open_connection(registry, BOB)
    await bob.websocket.close()

    delivered = await registry.broadcast(["u1", "u2", "u3"], {"type": "ping"})

    assert delivered == 1
    assert alice.websocket.sent == [{"type": "ping"}]
    assert bob.websocket.sent == []


@pytest.mark.asyncio
async def test_broadcast_continues_after_send_failure():
    registry = ConnectionRegistry()
    ws = FakeWebSocket(fail_sends=True)
    await ws.accept()
    await registry.register("u1", Connection(identity=ALICE, websocket=ws))
    bob = await open_connection(registry, BOB)
    carol = await open_connection(registry, CAROL)

    delivered = await registry.broadcast(["u1", "u2", "u3"], {"type": "ping"})

    assert delivered == 2
    assert bob.websocket.sent == [{"type": "ping"}]
    assert carol.websocket.sent == [{"type": "ping"}]


@pytest.mark.asyncio
async def test_broadcast_deduplicates_targets():
    registry = ConnectionRegistry()
    alice = await open_connection(registry, ALICE)

    delivered = await registry.broadcast(["u1", "u1"], {"type": "ping"})

    assert delivered == 1
    assert len(alice.websocket.sent) == 1


@pytest.mark.asyncio
async def test_concurrent_registrations_leave_single_entry():
    registry = ConnectionRegistry()
    connections = []
    for _ in range(10):
        ws = FakeWebSocket()
        await ws.accept()
        connections.append(Connection(identity=ALICE, websocket=ws))

    await asyncio.gather(*(registry.register("u1", c) for c in connections))

    current = await registry.lookup("u1")
    assert registry.active_count == 1
    assert current.is_open
    assert sum(1 for c in connections if c.is_open) == 1


@pytest.mark.asyncio
async def test_connection_close_is_idempotent():
    registry = ConnectionRegistry()
    connection = await open_connection(registry, ALICE)
    await connection.close(code=1001)
    await connection.close(code=1000)
    assert connection.websocket.close_code == 1001
