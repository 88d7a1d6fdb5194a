"""Bearer token authentication for mutating endpoints."""

import hmac
import logging

from fastapi import Depends, HTTPException, Request, status

from openclaw_gateway.models import GatewayConfig
from openclaw_gateway.state import get_config

logger = logging.getLogger(__name__)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def require_auth(request: Request, config: GatewayConfig = Depends(get_config)) -> None:
    """Require ``Authorization: Bearer <token>`` when a token is configured.

    Without a configured token every request is allowed and a warning is
    logged.

    Raises:
        HTTPException: 401 if the header is missing, malformed or wrong.
    """
    expected = config.auth.token
    if not expected:
        logger.warning("GATEWAY_AUTH_TOKEN not set - authentication disabled")
        return

    header = request.headers.get("Authorization")
    if not header:
        raise _unauthorized("Authentication required: missing Authorization header")

    scheme, _, token = header.partition(" ")
    if scheme != "Bearer":
        raise _unauthorized("Invalid authentication: Authorization header must use Bearer scheme")
    token = token.strip()
    if not token:
        raise _unauthorized("Invalid authentication: missing authentication token")

    if not hmac.compare_digest(token.encode("utf-8"), expected.encode("utf-8")):
        raise _unauthorized("Authentication failed: invalid authentication token")
