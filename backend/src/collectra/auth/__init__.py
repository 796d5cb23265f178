"""Session authentication."""

from collectra.auth.jwt_service import (
    InvalidTokenError,
    JWTError,
    JWTService,
    TokenExpiredError,
)
from collectra.auth.session import SessionResolver

__all__ = [
    "InvalidTokenError",
    "JWTError",
    "JWTService",
    "SessionResolver",
    "TokenExpiredError",
]
