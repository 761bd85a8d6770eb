import os
from dataclasses import dataclass
from typing import Optional


@dataclass
class RelayConfig:
    """Runtime configuration of the relay."""

    jwt_secret: str = "your_jwt_secret"
    """Secret used to verify bearer credentials."""
    jwt_algorithm: str = "HS256"
    """Signature algorithm of bearer credentials."""
    ws_path: str = "/ws"
    """Path of the WebSocket endpoint."""
    token_query_param: str = "token"
    """Query parameter on the upgrade request carrying the bearer credential."""
    api_prefix: str = "/api/v1"
    """Prefix of the membership and history HTTP routes."""
    mongo_uri: Optional[str] = None
    """MongoDB connection string. Without one the in-memory store is used."""
    mongo_db: str = "chat_relay"
    """MongoDB database name."""
    port: int = 8000
    """Port of the standalone server."""
    auth_close_code: int = 1008
    """Close code sent after an authentication failure (policy violation)."""
    takeover_close_code: int = 1000
    """Close code sent to a connection superseded by a newer one."""

    @classmethod
    def from_env(cls) -> "RelayConfig":
        """Build a config from environment variables, falling back to defaults."""
        defaults = cls()
        return cls(
            jwt_secret=os.environ.get("JWT_SECRET", defaults.jwt_secret),
            jwt_algorithm=os.environ.get("JWT_ALGORITHM", defaults.jwt_algorithm),
            ws_path=os.environ.get("WS_PATH", defaults.ws_path),
            token_query_param=os.environ.get("WS_TOKEN_PARAM", defaults.token_query_param),
            api_prefix=os.environ.get("API_PREFIX", defaults.api_prefix),
            mongo_uri=os.environ.get("MONGODB_CONNECTION") or None,
            mongo_db=os.environ.get("MONGODB_DB", defaults.mongo_db),
            port=int(os.environ.get("PORT", str(defaults.port))),
        )
