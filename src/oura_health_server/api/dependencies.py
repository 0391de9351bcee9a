"""Dependency providers wiring request-scoped services.

Each provider builds a service from the plugin-managed ``session`` and the
application state (settings, metrics collector, shared HTTP client).
"""

from datetime import timedelta
from typing import Any

import httpx
from litestar import Request
from litestar.datastructures import State
from litestar.di import Provide
from sqlalchemy.ext.asyncio import AsyncSession

from oura_health_server.core.auth import USER_ID_STATE_KEY
from oura_health_server.core.config import Settings
from oura_health_server.core.errors import ConfigError, UnauthorizedError
from oura_health_server.repositories.metrics import MetricsRepository
from oura_health_server.repositories.oauth_tokens import OAuthTokenRepository
from oura_health_server.repositories.users import UserRepository
from oura_health_server.services.metrics import MetricsService
from oura_health_server.services.oauth import OAuthService
from oura_health_server.services.users import UserService


def provide_current_user_id(request: Request[Any, Any, Any]) -> str:
    """Return the user id stored by jwt_guard."""
    user_id = request.state.get(USER_ID_STATE_KEY)
    if not user_id:
        raise UnauthorizedError("Authentication required")
    return user_id


def provide_user_service(session: AsyncSession, state: State) -> UserService:
    settings: Settings = state.settings
    return UserService(
        UserRepository(session),
        jwt_secret=settings.jwt_secret,
        jwt_algorithm=settings.jwt_algorithm,
        token_ttl=timedelta(hours=settings.jwt_expiry_hours),
    )


def provide_metrics_service(session: AsyncSession, state: State) -> MetricsService:
    return MetricsService(MetricsRepository(session), metrics=state.metrics)


def provide_oauth_service(session: AsyncSession, state: State) -> OAuthService:
    """Build the OAuth service.

    Raises:
        ConfigError: If Oura client credentials are not configured
    """
    settings: Settings = state.settings
    if not settings.oura_credentials_configured():
        raise ConfigError("Oura OAuth credentials are not configured")

    http_client: httpx.AsyncClient | None = state.get("oauth_http_client")
    return OAuthService(
        OAuthTokenRepository(session),
        client_id=settings.oura_client_id,
        client_secret=settings.oura_client_secret,
        redirect_uri=settings.oura_redirect_uri,
        scope=settings.oura_scope,
        authorize_url=settings.oura_authorize_url,
        token_url=settings.oura_token_url,
        revoke_url=settings.oura_revoke_url,
        timeout=settings.oauth_timeout_seconds,
        http_client=http_client,
    )


# Shared dependency maps for routers
user_dependencies = {
    "user_service": Provide(provide_user_service, sync_to_thread=False),
    "current_user_id": Provide(provide_current_user_id, sync_to_thread=False),
}
metrics_dependencies = {
    "metrics_service": Provide(provide_metrics_service, sync_to_thread=False),
    "current_user_id": Provide(provide_current_user_id, sync_to_thread=False),
}
oauth_dependencies = {
    "oauth_service": Provide(provide_oauth_service, sync_to_thread=False),
    "current_user_id": Provide(provide_current_user_id, sync_to_thread=False),
}
