"""Session resolution for inbound requests."""

import logging
from typing import Any

from starlette.requests import Request

from collectra.auth.jwt_service import JWTError, JWTService

logger = logging.getLogger(__name__)

BEARER = "bearer"


class SessionResolver:
    """Turns an ``Authorization: Bearer`` header into session data.

    A missing or invalid token yields None (unauthenticated). Requests
    are never rejected here; access decisions belong to beforeOperation
    hooks.

    Args:
        jwt_service: Token verifier; None disables session decoding
    """

    def __init__(self, jwt_service: JWTService | None):
        self._jwt_service = jwt_service

    def resolve(self, request: Request) -> dict[str, Any] | None:
        if self._jwt_service is None:
            return None

        scheme, _, token = request.headers.get("Authorization", "").partition(" ")
        if scheme.lower() != BEARER or not token.strip():
            return None

        try:
            return self._jwt_service.session_data(token.strip())
        except JWTError as e:
            logger.debug("Ignoring session token: %s", e)
            return None
