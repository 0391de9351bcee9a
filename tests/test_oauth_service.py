"""Tests for the OAuth token lifecycle.

Provider calls go through httpx.MockTransport; the repository is an
AsyncMock so writes can be asserted directly.
"""

from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock
from urllib.parse import parse_qs, urlparse

import httpx
import pytest
from sqlalchemy.exc import OperationalError

from oura_health_server.core.errors import BadRequestError, InternalError, NotFoundError
from oura_health_server.models.oauth_token import OURA_PROVIDER, OAuthToken
from oura_health_server.repositories.oauth_tokens import OAuthTokenRepository
from oura_health_server.services.oauth import OAuthService

TOKEN_URL = "https://oura.test/oauth/token"
REVOKE_URL = "https://oura.test/oauth/revoke"


class ProviderStub:
    """Records provider requests and answers with a canned response."""

    def __init__(self, status_code: int = 200, body: dict | None = None) -> None:
        self.status_code = status_code
        self.body = body or {
            "access_token": "new-access",
            "refresh_token": "new-refresh",
            "token_type": "Bearer",
            "expires_in": 3600,
            "scope": "daily",
        }
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status_code, json=self.body)

    def form(self, index: int = 0) -> dict[str, str]:
        parsed = parse_qs(self.requests[index].content.decode())
        return {key: values[0] for key, values in parsed.items()}


@pytest.fixture
def provider() -> ProviderStub:
    return ProviderStub()


@pytest.fixture
def repository() -> AsyncMock:
    return AsyncMock(spec=OAuthTokenRepository)


@pytest.fixture
async def service(repository, provider: ProviderStub):
    async with httpx.AsyncClient(transport=httpx.MockTransport(provider)) as client:
        yield OAuthService(
            repository,
            client_id="client-id",
            client_secret="client-secret",
            redirect_uri="http://localhost:8080/api/callback",
            token_url=TOKEN_URL,
            revoke_url=REVOKE_URL,
            http_client=client,
        )


def _stored_token(expires_at: datetime) -> OAuthToken:
    return OAuthToken(
        user_id="user-1",
        provider=OURA_PROVIDER,
        access_token="old-access",
        refresh_token="old-refresh",
        token_type="Bearer",
        expires_at=expires_at,
    )


# =============================================================================
# Authorization URL
# =============================================================================


def test_auth_url_carries_user_as_state(service: OAuthService) -> None:
    url = service.generate_auth_url("user-1")

    query = parse_qs(urlparse(url).query)
    assert url.startswith("https://cloud.ouraring.com/oauth/authorize?")
    assert query["state"] == ["user-1"]
    assert query["response_type"] == ["code"]
    assert query["client_id"] == ["client-id"]
    assert query["redirect_uri"] == ["http://localhost:8080/api/callback"]


def test_auth_url_requires_user(service: OAuthService) -> None:
    with pytest.raises(BadRequestError, match="user ID is required"):
        service.generate_auth_url("")


# =============================================================================
# Callback
# =============================================================================


async def test_callback_exchanges_code_and_saves(
    service: OAuthService, repository, provider: ProviderStub
) -> None:
    result = await service.handle_callback("auth-code", "user-1")

    assert result.user_id == "user-1"
    assert result.access_token == "new-access"
    assert result.expires_at > datetime.now(UTC) + timedelta(minutes=59)

    form = provider.form()
    assert form["grant_type"] == "authorization_code"
    assert form["code"] == "auth-code"
    assert form["client_secret"] == "client-secret"

    saved = repository.save_token.await_args.args[0]
    assert (saved.user_id, saved.access_token, saved.refresh_token) == (
        "user-1",
        "new-access",
        "new-refresh",
    )


@pytest.mark.parametrize(
    ("code", "state", "message"),
    [("", "user-1", "authorization code is required"), ("code", "", "state is required")],
)
async def test_callback_requires_code_and_state(
    service: OAuthService, provider: ProviderStub, code: str, state: str, message: str
) -> None:
    with pytest.raises(BadRequestError, match=message):
        await service.handle_callback(code, state)

    assert provider.requests == []


async def test_callback_provider_error_is_internal(
    service: OAuthService, repository, provider: ProviderStub
) -> None:
    provider.status_code = 400
    provider.body = {"error": "invalid_grant"}

    with pytest.raises(InternalError, match="failed to exchange code for token"):
        await service.handle_callback("bad-code", "user-1")

    repository.save_token.assert_not_awaited()


async def test_callback_save_failure_is_internal(service: OAuthService, repository) -> None:
    repository.save_token.side_effect = OperationalError("INSERT", {}, Exception("disk full"))

    with pytest.raises(InternalError, match="failed to save token"):
        await service.handle_callback("auth-code", "user-1")


# =============================================================================
# Refresh
# =============================================================================


async def test_refresh_valid_token_is_a_no_op(
    service: OAuthService, repository, provider: ProviderStub
) -> None:
    """A token that has not expired causes no provider call and no write."""
    repository.get_token.return_value = _stored_token(datetime.now(UTC) + timedelta(hours=1))

    await service.refresh_access_token("user-1")

    assert provider.requests == []
    repository.update_tokens.assert_not_awaited()
    repository.save_token.assert_not_awaited()


async def test_refresh_expired_token(
    service: OAuthService, repository, provider: ProviderStub
) -> None:
    repository.get_token.return_value = _stored_token(datetime.now(UTC) - timedelta(minutes=1))

    await service.refresh_access_token("user-1")

    form = provider.form()
    assert form["grant_type"] == "refresh_token"
    assert form["refresh_token"] == "old-refresh"

    kwargs = repository.update_tokens.await_args.kwargs
    assert kwargs["access_token"] == "new-access"
    assert kwargs["refresh_token"] == "new-refresh"
    assert kwargs["expires_at"] > datetime.now(UTC)


async def test_refresh_keeps_old_refresh_token_when_not_rotated(
    service: OAuthService, repository, provider: ProviderStub
) -> None:
    repository.get_token.return_value = _stored_token(datetime.now(UTC) - timedelta(minutes=1))
    provider.body = {"access_token": "new-access", "expires_in": 3600}

    await service.refresh_access_token("user-1")

    assert repository.update_tokens.await_args.kwargs["refresh_token"] == "old-refresh"


async def test_refresh_failure_leaves_row_untouched(
    service: OAuthService, repository, provider: ProviderStub
) -> None:
    repository.get_token.return_value = _stored_token(datetime.now(UTC) - timedelta(minutes=1))
    provider.status_code = 401
    provider.body = {"error": "invalid_grant"}

    with pytest.raises(InternalError, match="failed to refresh token"):
        await service.refresh_access_token("user-1")

    repository.update_tokens.assert_not_awaited()


async def test_refresh_without_token_is_not_found(service: OAuthService, repository) -> None:
    repository.get_token.return_value = None

    with pytest.raises(NotFoundError, match="no OAuth token found for user"):
        await service.refresh_access_token("user-1")


# =============================================================================
# Revoke
# =============================================================================


async def test_revoke_calls_provider_then_deletes(
    service: OAuthService, repository, provider: ProviderStub
) -> None:
    repository.get_token.return_value = _stored_token(datetime.now(UTC) + timedelta(hours=1))

    await service.revoke_token("user-1")

    assert str(provider.requests[0].url) == REVOKE_URL
    assert provider.form()["token"] == "old-access"
    repository.delete_token.assert_awaited_once_with("user-1", OURA_PROVIDER)


async def test_revoke_deletes_even_if_provider_fails(
    service: OAuthService, repository, provider: ProviderStub
) -> None:
    repository.get_token.return_value = _stored_token(datetime.now(UTC) + timedelta(hours=1))
    provider.status_code = 500

    await service.revoke_token("user-1")

    repository.delete_token.assert_awaited_once_with("user-1", OURA_PROVIDER)
