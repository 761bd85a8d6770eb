"""chat-relay: real-time messaging relay package."""

from chat_relay.relay_models import (
    DirectTarget, Group, GroupTarget, Identity, MessageRecord, MessageTarget, Role,
)
from chat_relay.errors import (
    AuthError, AuthorizationError, NotFoundError, PersistenceError, RelayError,
    TransportError, ValidationError,
)
from chat_relay.config import RelayConfig
from chat_relay.store import MemoryStore, RelayStore
from chat_relay.registry import Connection, ConnectionRegistry
from chat_relay.router import MessageRouter
from chat_relay.auth import TokenVerifier
from chat_relay.session import RelaySession, SessionState

__all__ = [
    "Identity",
    "Role",
    "Group",
    "MessageRecord",
    "MessageTarget",
    "DirectTarget",
    "GroupTarget",
    "RelayError",
    "AuthError",
    "ValidationError",
    "NotFoundError",
    "AuthorizationError",
    "PersistenceError",
    "TransportError",
    "RelayConfig",
    "RelayStore",
    "MemoryStore",
    "MongoDBStore",
    "Connection",
    "ConnectionRegistry",
    "MessageRouter",
    "TokenVerifier",
    "RelaySession",
    "SessionState",
    "RelayContext",
]


def __getattr__(name: str):
    if name == "MongoDBStore":
        from chat_relay.store.mongodb_store import MongoDBStore
        return MongoDBStore
    if name == "RelayContext":
        from chat_relay.server import RelayContext
        return RelayContext
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
