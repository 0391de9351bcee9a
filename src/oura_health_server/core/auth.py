"""JWT and API key authentication.

User-facing routes are protected by a bearer JWT issued at login. The data
processor routes accept an optional shared key (X-API-Key) so only the
collector can write.
"""

import logging
import secrets
from datetime import UTC, datetime, timedelta
from typing import Any

import jwt
from litestar.connection import ASGIConnection
from litestar.handlers import BaseRouteHandler

from oura_health_server.core.config import Settings
from oura_health_server.core.errors import (
    InvalidTokenError,
    TokenExpiredError,
    UnauthorizedError,
)

logger = logging.getLogger(__name__)

# Connection state key for the authenticated user's id
USER_ID_STATE_KEY = "user_id"


def create_access_token(
    user_id: str,
    username: str,
    secret: str,
    algorithm: str = "HS256",
    expires_in: timedelta = timedelta(hours=24),
) -> str:
    """Issue a signed JWT for a user.

    Args:
        user_id: User identifier (``user_id`` claim)
        username: Username (``username`` claim)
        secret: HMAC signing secret
        algorithm: Signing algorithm
        expires_in: Token lifetime

    Returns:
        Encoded JWT string
    """
    now = datetime.now(UTC)
    claims = {
        "user_id": user_id,
        "username": username,
        "iat": now,
        "exp": now + expires_in,
    }
    return jwt.encode(claims, secret, algorithm=algorithm)


def decode_access_token(token: str, secret: str, algorithm: str = "HS256") -> dict[str, Any]:
    """Verify a JWT and return its claims.

    Args:
        token: Encoded JWT
        secret: HMAC signing secret
        algorithm: Expected signing algorithm

    Returns:
        Decoded claims

    Raises:
        TokenExpiredError: If the token's exp has passed
        InvalidTokenError: If the signature or claims are invalid
    """
    try:
        claims = jwt.decode(
            token,
            secret,
            algorithms=[algorithm],
            options={"require": ["exp", "iat"]},
        )
    except jwt.ExpiredSignatureError as e:
        raise TokenExpiredError("Token has expired") from e
    except jwt.InvalidTokenError as e:
        raise InvalidTokenError("Invalid token") from e

    if not claims.get("user_id"):
        raise InvalidTokenError("Invalid token")

    return claims


def _extract_bearer_token(connection: ASGIConnection[Any, Any, Any, Any]) -> str | None:
    """Extract the bearer token from the Authorization header."""
    auth_header = connection.headers.get("Authorization", "")
    scheme, _, token = auth_header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


async def jwt_guard(connection: ASGIConnection[Any, Any, Any, Any], _: BaseRouteHandler) -> None:
    """Litestar guard that requires a valid bearer JWT.

    Stores the authenticated user id in ``connection.state``.

    Args:
        connection: The ASGI connection
        _: The route handler (unused)

    Raises:
        UnauthorizedError: If the Authorization header is missing or malformed
        TokenExpiredError: If the token has expired
        InvalidTokenError: If the token cannot be verified
    """
    token = _extract_bearer_token(connection)
    if token is None:
        raise UnauthorizedError("Missing or malformed Authorization header")

    settings: Settings = connection.app.state.settings
    claims = decode_access_token(token, settings.jwt_secret, settings.jwt_algorithm)

    connection.state[USER_ID_STATE_KEY] = claims["user_id"]
    logger.debug(f"JWT validated for user {claims['user_id']}")


async def processor_api_key_guard(
    connection: ASGIConnection[Any, Any, Any, Any], _: BaseRouteHandler
) -> None:
    """Litestar guard for the data processor's shared key.

    If no PROCESSOR_API_KEY is configured, authentication is skipped.
    Uses constant-time comparison to prevent timing attacks.

    Raises:
        UnauthorizedError: If a key is required but missing or wrong
    """
    settings: Settings = connection.app.state.settings
    if not settings.processor_api_key:
        return

    api_key = connection.headers.get("X-API-Key")
    if not api_key:
        raise UnauthorizedError("Missing API key. Use X-API-Key header.")

    if not secrets.compare_digest(api_key, settings.processor_api_key):
        logger.warning("Invalid processor API key attempted")
        raise UnauthorizedError("Invalid API key")
