"""Test configuration and fixtures."""
import asyncio
import json
from typing import Optional

import pytest
from starlette.websockets import WebSocketState

from chat_relay.auth import TokenVerifier
from chat_relay.config import RelayConfig
from chat_relay.registry import Connection, ConnectionRegistry
from chat_relay.relay_models import Identity
from chat_relay.router import MessageRouter
from chat_relay.session import RelaySession
from chat_relay.store import MemoryStore

TEST_SECRET = "test_secret"


class FakeWebSocket:
    """Minimal stand-in for ``starlette.websockets.WebSocket``.

    Inbound frames are queued with ``push``; ``disconnect`` simulates the client
    going away. Everything sent by the server is recorded in ``sent``.
    """

    def __init__(self, token: Optional[str] = None, fail_sends: bool = False):
        self.query_params = {"token": token} if token is not None else {}
        self.client_state = WebSocketState.CONNECTING
        self.application_state = WebSocketState.CONNECTING
        self.sent: list[dict] = []
        self.close_code: Optional[int] = None
        self.fail_sends = fail_sends
        self._inbox: asyncio.Queue = asyncio.Queue()

    async def accept(self):
        self.client_state = WebSocketState.CONNECTED
        self.application_state = WebSocketState.CONNECTED

    async def send_json(self, data: dict):
        if self.application_state != WebSocketState.CONNECTED:
            raise RuntimeError("Cannot call 'send' once a close message has been sent.")
        if self.fail_sends:
            raise ConnectionResetError("peer gone")
        self.sent.append(data)

    async def close(self, code: int = 1000, reason: Optional[str] = None):
        self.close_code = code
        self.application_state = WebSocketState.DISCONNECTED
        self.client_state = WebSocketState.DISCONNECTED
        self._inbox.put_nowait(None)

    async def receive(self) -> dict:
        if self.client_state == WebSocketState.DISCONNECTED and self._inbox.empty():
            raise RuntimeError('Cannot call "receive" once a disconnect message has been received.')
        item = await self._inbox.get()
        if item is None:
            self.client_state = WebSocketState.DISCONNECTED
            return {"type": "websocket.disconnect", "code": self.close_code or 1000}
        if isinstance(item, bytes):
            return {"type": "websocket.receive", "bytes": item}
        return {"type": "websocket.receive", "text": item}

    def push(self, frame):
        """Queue a text frame; ``bytes`` are queued as a binary frame, dicts as JSON text."""
        self._inbox.put_nowait(frame if isinstance(frame, (str, bytes)) else json.dumps(frame))

    def disconnect(self):
        self.client_state = WebSocketState.DISCONNECTED
        self._inbox.put_nowait(None)

    @property
    def closed(self) -> bool:
        return self.close_code is not None

    def frames_of(self, frame_type: str) -> list[dict]:
        return [f for f in self.sent if f.get("type") == frame_type]


async def wait_until(predicate, timeout: float = 2.0):
    """Yield to the loop until ``predicate()`` holds."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.001)


async def open_connection(registry: ConnectionRegistry, identity: Identity) -> Connection:
    """Register an accepted fake socket for ``identity`` without running a session."""
    ws = FakeWebSocket()
    await ws.accept()
    connection = Connection(identity=identity, websocket=ws)
    await registry.register(identity.id, connection)
    return connection


@pytest.fixture
def store():
    """Store with users u1..u3 (A, B, C) in group g1, an unverified u4 and an empty g2."""
    s = MemoryStore()
    s.add_user("u1", "A")
    s.add_user("u2", "B")
    s.add_user("u3", "C")
    s.add_user("u4", "D", verified=False)
    s.add_group("g1", "General", ["u1", "u2", "u3"])
    s.add_group("g2", "Empty")
    return s


@pytest.fixture
def registry():
    return ConnectionRegistry()


@pytest.fixture
def router(store, registry):
    return MessageRouter(store, registry)


@pytest.fixture
def config():
    return RelayConfig(jwt_secret=TEST_SECRET)


@pytest.fixture
def verifier(config):
    return TokenVerifier.from_config(config)


@pytest.fixture
def make_session(store, registry, router, verifier, config):
    """Factory returning ``(session, websocket)`` for a given token."""
    def _make(token: Optional[str] = None, **ws_kwargs):
        ws = FakeWebSocket(token=token, **ws_kwargs)
        session = RelaySession(
            ws, store=store, registry=registry, router=router, verifier=verifier, config=config,
        )
        return session, ws
    return _make
