"""OAuth2 token lifecycle against Oura.

Flow per (user, provider):

    NO_TOKEN -> AUTHORIZED (valid) -> AUTHORIZED (expired) -> AUTHORIZED (valid)
                                         [via refresh_access_token]
             -> REVOKED (row deleted)

Refresh is lazy: callers invoke it before using a token. A token whose
expiry is still in the future is left alone without any network call.
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any
from urllib.parse import urlencode

import httpx
import structlog
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError

from oura_health_server.core.errors import BadRequestError, InternalError, NotFoundError
from oura_health_server.models.base import ensure_utc
from oura_health_server.models.oauth_token import OURA_PROVIDER, OAuthToken
from oura_health_server.repositories.oauth_tokens import OAuthTokenRepository
from oura_health_server.schemas.oauth import ProviderTokenResponse

logger = structlog.get_logger()


class TokenEndpointError(Exception):
    """The provider's token endpoint answered with a non-200 status."""

    def __init__(self, status_code: int, body: str) -> None:
        super().__init__(f"token endpoint returned {status_code}: {body}")
        self.status_code = status_code
        self.body = body


@dataclass(frozen=True)
class OAuthResult:
    """Outcome of a successful authorization code exchange."""

    user_id: str
    access_token: str
    expires_at: datetime


class OAuthService:
    """Manage the Oura access/refresh token pair for each user."""

    def __init__(
        self,
        repository: OAuthTokenRepository,
        client_id: str,
        client_secret: str,
        redirect_uri: str,
        scope: str = "daily personal email",
        authorize_url: str = "https://cloud.ouraring.com/oauth/authorize",
        token_url: str = "https://api.ouraring.com/oauth/token",
        revoke_url: str = "https://api.ouraring.com/oauth/revoke",
        timeout: float = 10.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize OAuth service.

        Args:
            repository: Token repository
            client_id: Oura OAuth client ID
            client_secret: Oura OAuth client secret
            redirect_uri: Callback URL registered with Oura
            scope: Space separated scopes to request
            authorize_url: Provider authorization endpoint
            token_url: Provider token endpoint
            revoke_url: Provider revocation endpoint
            timeout: Timeout in seconds for each provider call
            http_client: Shared client to use instead of one per call
        """
        self.repository = repository
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self.scope = scope
        self.authorize_url = authorize_url
        self.token_url = token_url
        self.revoke_url = revoke_url
        self.timeout = timeout
        self._http_client = http_client
        self.logger = logger.bind(service="oauth")

    def generate_auth_url(self, user_id: str) -> str:
        """Build the provider authorization URL for a user.

        The user id travels as the ``state`` parameter and comes back on the
        callback to identify whose token is being issued.

        Raises:
            BadRequestError: If user_id is empty
        """
        if not user_id:
            raise BadRequestError("user ID is required")

        params = {
            "response_type": "code",
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "scope": self.scope,
            "state": user_id,
        }
        self.logger.info("Generated OAuth authorization URL", user_id=user_id)
        return f"{self.authorize_url}?{urlencode(params)}"

    async def handle_callback(self, code: str, state: str) -> OAuthResult:
        """Exchange an authorization code and store the resulting tokens.

        Args:
            code: Authorization code from the provider redirect
            state: State from the redirect (the user id)

        Returns:
            The stored token summary

        Raises:
            BadRequestError: If code or state is empty
            InternalError: If the exchange or the save fails
        """
        if not code:
            raise BadRequestError("authorization code is required")
        if not state:
            raise BadRequestError("state is required")

        user_id = state

        try:
            token_response = await self._request_token(
                {
                    "grant_type": "authorization_code",
                    "code": code,
                    "redirect_uri": self.redirect_uri,
                }
            )
        except (httpx.HTTPError, TokenEndpointError, ValidationError, ValueError) as e:
            self.logger.error("Code exchange failed", user_id=user_id, error=str(e))
            raise InternalError("failed to exchange code for token") from e

        if not token_response.refresh_token:
            raise InternalError("failed to exchange code for token").with_detail(
                "reason", "provider returned no refresh token"
            )

        expires_at = datetime.now(UTC) + timedelta(seconds=token_response.expires_in)
        token = OAuthToken(
            user_id=user_id,
            provider=OURA_PROVIDER,
            access_token=token_response.access_token,
            refresh_token=token_response.refresh_token,
            token_type=token_response.token_type,
            expires_at=expires_at,
            scope=token_response.scope,
        )

        try:
            await self.repository.save_token(token)
        except SQLAlchemyError as e:
            self.logger.error("Failed to save OAuth token", user_id=user_id, error=str(e))
            raise InternalError("failed to save token") from e

        self.logger.info(
            "Saved OAuth token",
            user_id=user_id,
            expires_at=expires_at.isoformat(),
        )
        return OAuthResult(
            user_id=user_id,
            access_token=token_response.access_token,
            expires_at=expires_at,
        )

    async def refresh_access_token(self, user_id: str, provider: str = OURA_PROVIDER) -> None:
        """Refresh a user's access token if it has expired.

        A token that is still valid is left untouched: no provider call, no
        write. The stored row only changes after a successful refresh.

        Raises:
            BadRequestError: If user_id or provider is empty
            NotFoundError: If the user has no token for the provider
            InternalError: If the refresh or the update fails
        """
        existing = await self._get_existing(user_id, provider)

        expires_at = ensure_utc(existing.expires_at)
        if datetime.now(UTC) < expires_at:
            self.logger.info(
                "Token still valid, no refresh needed",
                user_id=user_id,
                expires_at=expires_at.isoformat(),
            )
            return

        try:
            token_response = await self._request_token(
                {
                    "grant_type": "refresh_token",
                    "refresh_token": existing.refresh_token,
                }
            )
        except (httpx.HTTPError, TokenEndpointError, ValidationError, ValueError) as e:
            self.logger.error("Token refresh failed", user_id=user_id, error=str(e))
            raise InternalError("failed to refresh token") from e

        new_expires_at = datetime.now(UTC) + timedelta(seconds=token_response.expires_in)
        try:
            await self.repository.update_tokens(
                user_id,
                provider,
                access_token=token_response.access_token,
                # Providers may omit the refresh token when it is not rotated
                refresh_token=token_response.refresh_token or existing.refresh_token,
                expires_at=new_expires_at,
            )
        except SQLAlchemyError as e:
            self.logger.error("Failed to update OAuth token", user_id=user_id, error=str(e))
            raise InternalError("failed to update token") from e

        self.logger.info(
            "Refreshed OAuth token",
            user_id=user_id,
            expires_at=new_expires_at.isoformat(),
        )

    async def revoke_token(self, user_id: str, provider: str = OURA_PROVIDER) -> None:
        """Revoke a user's token with the provider and delete it locally.

        Provider revocation is best effort; the local row is deleted even if
        the provider call fails.

        Raises:
            BadRequestError: If user_id or provider is empty
            NotFoundError: If the user has no token for the provider
            InternalError: If the local delete fails
        """
        existing = await self._get_existing(user_id, provider)

        try:
            await self._revoke_with_provider(existing.access_token)
        except (httpx.HTTPError, TokenEndpointError) as e:
            self.logger.warning(
                "Failed to revoke token with provider",
                user_id=user_id,
                error=str(e),
            )

        try:
            await self.repository.delete_token(user_id, provider)
        except SQLAlchemyError as e:
            self.logger.error("Failed to delete OAuth token", user_id=user_id, error=str(e))
            raise InternalError("failed to delete token") from e

        self.logger.info("Revoked OAuth token", user_id=user_id)

    async def _get_existing(self, user_id: str, provider: str) -> OAuthToken:
        if not user_id:
            raise BadRequestError("user ID is required")
        if not provider:
            raise BadRequestError("provider is required")

        try:
            token = await self.repository.get_token(user_id, provider)
        except SQLAlchemyError as e:
            raise InternalError("failed to get token") from e

        if token is None:
            raise NotFoundError("no OAuth token found for user")
        return token

    @asynccontextmanager
    async def _client(self) -> AsyncIterator[httpx.AsyncClient]:
        """Yield the shared client, or a short-lived one."""
        if self._http_client is not None:
            yield self._http_client
            return
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            yield client

    async def _request_token(self, form: dict[str, Any]) -> ProviderTokenResponse:
        """POST a grant to the token endpoint and parse the response."""
        data = {
            **form,
            "client_id": self.client_id,
            "client_secret": self.client_secret,
        }
        async with self._client() as client:
            response = await client.post(self.token_url, data=data, timeout=self.timeout)

        if response.status_code != 200:
            raise TokenEndpointError(response.status_code, response.text)

        return ProviderTokenResponse.model_validate(response.json())

    async def _revoke_with_provider(self, access_token: str) -> None:
        data = {
            "token": access_token,
            "client_id": self.client_id,
            "client_secret": self.client_secret,
        }
        async with self._client() as client:
            response = await client.post(self.revoke_url, data=data, timeout=self.timeout)

        if response.status_code not in (200, 204):
            raise TokenEndpointError(response.status_code, response.text)
