"""Connection registry: identity id → live connection.

The registry is the single source of truth for who is online and the only
structure shared between connection tasks. ``register``, ``unregister``,
``lookup`` and ``broadcast`` serialize on one lock; socket I/O (closing a
superseded connection, sending a broadcast) happens outside of it on a
snapshot taken under the lock.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Set

from starlette.websockets import WebSocket, WebSocketState

from chat_relay.errors import TransportError
from chat_relay.relay_models import Identity

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class Connection:
    """One live WebSocket association of an identity."""
    identity: Identity
    websocket: WebSocket
    joined_group_ids: Set[str] = field(default_factory=set)
    """Cache of groups joined over this socket. Never used for routing decisions."""
    connected_at: float = field(default_factory=time.monotonic)
    _closed: bool = field(default=False, init=False, repr=False)

    @property
    def identity_id(self) -> str:
        return self.identity.id

    @property
    def is_open(self) -> bool:
        return (
            not self._closed
            and self.websocket.client_state == WebSocketState.CONNECTED
            and self.websocket.application_state == WebSocketState.CONNECTED
        )

    async def send(self, payload: dict) -> None:
        """Send one JSON frame.

        :raises TransportError: if the socket is not writable or the send fails.
        """
        if not self.is_open:
            raise TransportError(f"Connection of {self.identity_id} is not open")
        try:
            await self.websocket.send_json(payload)
        except Exception as e:
            raise TransportError(f"Send to {self.identity_id} failed: {e}") from e

    async def close(self, code: int = 1000, reason: str = "") -> None:
        """Close the socket. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        if self.websocket.application_state == WebSocketState.DISCONNECTED:
            return
        try:
            await self.websocket.close(code=code, reason=reason)
        except Exception as e:
            logger.debug(f"[REGISTRY] Close of {self.identity_id} failed: {e}")


class ConnectionRegistry:
    """Maps identity id → its current ``Connection``. At most one per identity."""

    def __init__(self, takeover_close_code: int = 1000):
        self._connections: Dict[str, Connection] = {}
        self._lock = asyncio.Lock()
        self._takeover_close_code = takeover_close_code

    async def register(self, identity_id: str, connection: Connection) -> None:
        """Insert ``connection``, closing any connection it supersedes."""
        async with self._lock:
            previous = self._connections.get(identity_id)
            self._connections[identity_id] = connection
        if previous is not None and previous is not connection:
            logger.info(f"[REGISTRY] Session takeover for {identity_id}, closing previous connection")
            await previous.close(code=self._takeover_close_code, reason="Session superseded")
        logger.info(f"[REGISTRY] Registered {identity_id} (online: {len(self._connections)})")

    async def unregister(self, identity_id: str, connection: Connection) -> bool:
        """Remove the entry only if it still belongs to ``connection``."""
        async with self._lock:
            current = self._connections.get(identity_id)
            if current is not connection:
                return False
            del self._connections[identity_id]
        logger.info(f"[REGISTRY] Unregistered {identity_id} (online: {len(self._connections)})")
        return True

    async def lookup(self, identity_id: str) -> Optional[Connection]:
        """Current connection of ``identity_id``. It may already be closing."""
        async with self._lock:
            return self._connections.get(identity_id)

    async def broadcast(self, identity_ids: Iterable[str], payload: dict) -> int:
        """Best-effort send to every online identity in ``identity_ids``.

        Offline or closing targets and targets whose send fails are skipped.
        Returns the number of connections the payload was delivered to.
        """
        async with self._lock:
            targets: List[Connection] = []
            for identity_id in dict.fromkeys(identity_ids):
                connection = self._connections.get(identity_id)
                if connection is not None:
                    targets.append(connection)

        delivered = 0
        for connection in targets:
            if not connection.is_open:
                continue
            try:
                await connection.send(payload)
                delivered += 1
            except TransportError as e:
                logger.debug(f"[REGISTRY] Skipping target: {e.message}")
        return delivered

    def online_ids(self) -> Set[str]:
        return set(self._connections)

    @property
    def active_count(self) -> int:
        return len(self._connections)
