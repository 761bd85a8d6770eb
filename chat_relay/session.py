"""Per-connection relay session.

A session owns one socket through ``CONNECTING → AUTHENTICATING → ACTIVE →
CLOSED``. Frames are read and handled one at a time, which keeps per-sender
ordering; different sessions run as independent tasks.
"""

import logging
from enum import Enum
from typing import Optional, Union

from starlette.websockets import WebSocket, WebSocketDisconnect, WebSocketState

from chat_relay.auth import TokenVerifier
from chat_relay.config import RelayConfig
from chat_relay.errors import AuthError, RelayError, TransportError
from chat_relay.frames import ErrorFrame, parse_frame
from chat_relay.registry import Connection, ConnectionRegistry
from chat_relay.relay_models import Identity
from chat_relay.router import MessageRouter
from chat_relay.store import RelayStore

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    CONNECTING = "connecting"
    AUTHENTICATING = "authenticating"
    ACTIVE = "active"
    CLOSED = "closed"


class RelaySession:
    """Lifecycle of one WebSocket connection."""

    def __init__(
        self,
        websocket: WebSocket,
        *,
        store: RelayStore,
        registry: ConnectionRegistry,
        router: MessageRouter,
        verifier: TokenVerifier,
        config: Optional[RelayConfig] = None,
    ):
        self.websocket = websocket
        self.store = store
        self.registry = registry
        self.router = router
        self.verifier = verifier
        self.config = config or RelayConfig()
        self.state = SessionState.CONNECTING
        self.connection: Optional[Connection] = None

    @property
    def identity(self) -> Optional[Identity]:
        return self.connection.identity if self.connection else None

    async def run(self) -> None:
        """Authenticate, then handle frames until the socket closes."""
        await self.websocket.accept()
        self.state = SessionState.AUTHENTICATING

        token = self.websocket.query_params.get(self.config.token_query_param)
        try:
            identity = await self.verifier.authenticate(token, self.store)
        except AuthError as e:
            await self._reject(e.message)
            return
        except Exception as e:
            logger.error(f"[WS] Authentication error: {type(e).__name__}: {e}", exc_info=True)
            await self._reject("Authentication failed")
            return

        self.connection = Connection(identity=identity, websocket=self.websocket)
        await self.registry.register(identity.id, self.connection)
        self.state = SessionState.ACTIVE
        logger.info(f"[WS] Client connected: {identity.id} ({identity.display_name})")

        try:
            while self.state == SessionState.ACTIVE:
                message = await self.websocket.receive()
                if message["type"] == "websocket.disconnect":
                    raise WebSocketDisconnect(message.get("code", 1000), message.get("reason"))
                # Text and binary frames carry the same JSON payload
                await self.handle_frame(message.get("text") or message.get("bytes") or "")
        except WebSocketDisconnect as e:
            logger.info(f"[WS] Client disconnected: {identity.id} (code {e.code})")
        except TransportError as e:
            logger.info(f"[WS] Write to {identity.id} failed, closing: {e.message}")
        except RuntimeError as e:
            # Starlette raises RuntimeError when receiving on a socket closed by us
            logger.info(f"[WS] Socket of {identity.id} no longer readable: {e}")
        finally:
            await self.close()

    async def handle_frame(self, raw: Union[str, bytes]) -> None:
        """Parse and route one frame. Only transport failures escape."""
        try:
            frame = parse_frame(raw)
            await self.router.dispatch(self.connection, frame)
        except TransportError:
            raise
        except RelayError as e:
            logger.debug(f"[WS] {e.error_type} for {self.connection.identity_id}: {e.message}")
            await self.send_error(e.message)
        except Exception as e:
            logger.error(f"[WS] Error handling message: {type(e).__name__}: {e}", exc_info=True)
            await self.send_error("Error processing message")

    async def send_error(self, message: str) -> None:
        """Send an ``error`` frame to this session's socket.

        :raises TransportError: if the socket is no longer writable.
        """
        await self.connection.send(ErrorFrame(message=message).to_wire())

    async def close(self) -> None:
        """Unregister and close the socket. Safe to call more than once."""
        if self.state == SessionState.CLOSED:
            return
        self.state = SessionState.CLOSED
        if self.connection is None:
            return
        await self.registry.unregister(self.connection.identity_id, self.connection)
        await self.connection.close()

    async def _reject(self, message: str) -> None:
        logger.warning(f"[WS] Authentication failed: {message}")
        self.state = SessionState.CLOSED
        try:
            if self.websocket.application_state == WebSocketState.CONNECTED:
                await self.websocket.send_json(ErrorFrame(message=message).to_wire())
            await self.websocket.close(code=self.config.auth_close_code, reason=message)
        except Exception as e:
            logger.debug(f"[WS] Could not deliver auth failure: {e}")
