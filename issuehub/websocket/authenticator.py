"""WebSocket handshake authentication.

A connection authenticates exactly once, before it can join any room. The
token may arrive with the handshake (``?token=`` query parameter or an
``Authorization: Bearer`` header); otherwise the first client frame must be
``{"type": "auth", "data": {"token": "..."}}``, sent within the handshake
window.
"""

import asyncio
import json
import logging
from typing import Any, Callable, Optional
from uuid import UUID

from ..config import settings
from ..errors import AuthError
from ..services.auth_service import TokenExpiredError, TokenInvalidError, verify_access_token
from .events import ClientMessage

logger = logging.getLogger(__name__)

TokenVerifier = Callable[[Optional[str]], UUID]


def extract_bearer(authorization: Optional[str]) -> Optional[str]:
    """Return the token from an ``Authorization: Bearer <token>`` header."""
    if not authorization:
        return None
    scheme, _, credentials = authorization.partition(" ")
    if scheme.lower() != "bearer" or not credentials.strip():
        return None
    return credentials.strip()


class ConnectionAuthenticator:
    """Resolves a handshake credential to a user id or raises AuthError."""

    def __init__(
        self,
        verifier: TokenVerifier = verify_access_token,
        handshake_timeout: Optional[float] = None,
    ) -> None:
        self._verify = verifier
        self._timeout = handshake_timeout

    @property
    def handshake_timeout(self) -> float:
        if self._timeout is not None:
            return self._timeout
        return settings.ws_handshake_timeout

    def authenticate(self, token: Optional[str]) -> UUID:
        """
        Verify a bearer token.

        Raises:
            AuthError: If the token is missing, malformed, expired or badly signed
        """
        if not token:
            raise AuthError("Authentication required")
        try:
            return self._verify(token)
        except TokenExpiredError as e:
            raise AuthError("Token expired") from e
        except TokenInvalidError as e:
            raise AuthError("Invalid token") from e

    async def authenticate_handshake(self, websocket: Any, token: Optional[str] = None) -> UUID:
        """
        Authenticate an accepted socket within the handshake window.

        Args:
            websocket: The accepted WebSocket
            token: Token presented with the handshake, if any

        Raises:
            AuthError: On any verification failure or when no token arrives in time
        """
        if token:
            return self.authenticate(token)

        try:
            raw = await asyncio.wait_for(websocket.receive_text(), timeout=self.handshake_timeout)
        except asyncio.TimeoutError as e:
            raise AuthError("Handshake timed out") from e

        try:
            frame = json.loads(raw)
        except json.JSONDecodeError as e:
            raise AuthError("Malformed handshake frame") from e

        if not isinstance(frame, dict) or frame.get("type") != ClientMessage.AUTH.value:
            raise AuthError("First message must be an auth frame")
        data = frame.get("data") or {}
        return self.authenticate(data.get("token") if isinstance(data, dict) else None)


# Global singleton instance
authenticator = ConnectionAuthenticator()
