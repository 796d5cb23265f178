"""Session tokens.

Collectra reads session data from HS256-signed JWTs. Issuing tokens
is left to the embedding program (there are no login routes), which
calls ``JWTService.encode``.
"""

import time
from typing import Any

import jwt

# Claims describing the token itself rather than the session.
TOKEN_CLAIMS = frozenset({"exp", "iat", "nbf"})


class JWTError(Exception):
    """A session token could not be accepted."""


class TokenExpiredError(JWTError):
    pass


class InvalidTokenError(JWTError):
    pass


class JWTService:
    """Issues and verifies session tokens with a shared secret.

    Args:
        secret_key: Signing secret (COLLECTRA_SECRET_KEY)
        algorithm: Signing algorithm
        leeway: Seconds of clock skew tolerated on ``exp``/``nbf``
    """

    SESSION_TTL = 60 * 60

    def __init__(self, secret_key: str, algorithm: str = "HS256", leeway: int = 0):
        self._secret_key = secret_key
        self._algorithm = algorithm
        self._leeway = leeway

    def encode(self, session: dict[str, Any], ttl: int | None = None) -> str:
        """Sign session data, e.g. ``{"sub": "42", "user_type": "admin"}``."""
        now = int(time.time())
        payload = {**session, "iat": now, "exp": now + (ttl or self.SESSION_TTL)}
        return jwt.encode(payload, self._secret_key, algorithm=self._algorithm)

    def decode(self, token: str) -> dict[str, Any]:
        """Verify a token and return every claim it carries.

        Raises:
            TokenExpiredError: Past ``exp``
            InvalidTokenError: Bad signature, malformed or not yet valid
        """
        try:
            return jwt.decode(
                token,
                self._secret_key,
                algorithms=[self._algorithm],
                leeway=self._leeway,
            )
        except jwt.ExpiredSignatureError:
            raise TokenExpiredError("Session token has expired") from None
        except jwt.InvalidTokenError as e:
            raise InvalidTokenError(f"Invalid session token: {e}") from None

    def session_data(self, token: str) -> dict[str, Any]:
        """Decode a token into session data, without the token's own claims."""
        return {k: v for k, v in self.decode(token).items() if k not in TOKEN_CLAIMS}
