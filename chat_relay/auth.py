"""Bearer credential verification.

Credentials are HS256 JWTs carrying the identity id in ``id`` (or ``sub``).
Verification fails closed: any error while decoding the token or loading the
identity denies the connection.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from jose import JWTError, jwt

from chat_relay.config import RelayConfig
from chat_relay.errors import AuthError, PersistenceError
from chat_relay.relay_models import Identity
from chat_relay.store import RelayStore

logger = logging.getLogger(__name__)


class TokenVerifier:
    """Turns a bearer credential into a verified ``Identity``."""

    def __init__(self, secret: str, algorithm: str = "HS256"):
        self._secret = secret
        self._algorithm = algorithm

    @classmethod
    def from_config(cls, config: RelayConfig) -> "TokenVerifier":
        return cls(config.jwt_secret, config.jwt_algorithm)

    def create_token(
        self,
        user_id: str,
        *,
        email: str = "",
        role: str = "user",
        expires_delta: Optional[timedelta] = None,
    ) -> str:
        """Sign a credential in the format the REST login issues (dev and tests)."""
        expire = datetime.now(timezone.utc) + (expires_delta or timedelta(hours=24))
        claims = {"id": user_id, "email": email, "role": role, "exp": expire}
        return jwt.encode(claims, self._secret, algorithm=self._algorithm)

    def decode(self, token: str) -> Dict[str, Any]:
        """Check signature and expiry and return the claims."""
        try:
            return jwt.decode(token, self._secret, algorithms=[self._algorithm])
        except JWTError as e:
            logger.debug(f"[AUTH] Token rejected: {e}")
            raise AuthError("Invalid authentication token")

    async def authenticate(self, token: Optional[str], store: RelayStore) -> Identity:
        """Verify ``token`` and load the identity it refers to.

        :raises AuthError: if the token is missing or invalid, the identity does
            not exist or is not verified, or the store lookup fails.
        """
        if not token:
            raise AuthError("Authentication token required")

        claims = self.decode(token)
        user_id = claims.get("id") or claims.get("sub")
        if user_id is None or user_id == "":
            raise AuthError("Invalid authentication token")

        try:
            identity = await store.get_user(str(user_id))
        except PersistenceError as e:
            logger.error(f"[AUTH] Identity lookup failed for {user_id}: {e}")
            raise AuthError("Authentication failed")

        if identity is None:
            raise AuthError("User not found")
        if not identity.verified:
            raise AuthError("Email verification required")
        return identity
