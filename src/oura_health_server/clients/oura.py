"""Oura v2 usercollection API client."""

from datetime import date
from types import TracebackType
from typing import Any

import httpx

from oura_health_server.core.errors import ExternalServiceError

DEFAULT_BASE_URL = "https://api.ouraring.com/v2/usercollection"


class OuraClient:
    """Fetch daily sleep, activity and readiness documents for one user.

    Usage:
        async with OuraClient(access_token) as client:
            records = await client.get_daily_sleep(date.today())
    """

    def __init__(
        self,
        access_token: str,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize client.

        Args:
            access_token: OAuth bearer token for the user
            base_url: usercollection base URL
            timeout: Per-request timeout in seconds
            transport: Optional httpx transport (tests)
        """
        self._client = httpx.AsyncClient(
            base_url=base_url,
            headers={"Authorization": f"Bearer {access_token}"},
            timeout=timeout,
            transport=transport,
        )

    async def __aenter__(self) -> "OuraClient":
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def get_daily_sleep(self, day: date) -> list[dict[str, Any]]:
        return await self._get_daily("daily_sleep", day)

    async def get_daily_activity(self, day: date) -> list[dict[str, Any]]:
        return await self._get_daily("daily_activity", day)

    async def get_daily_readiness(self, day: date) -> list[dict[str, Any]]:
        return await self._get_daily("daily_readiness", day)

    async def _get_daily(self, endpoint: str, day: date) -> list[dict[str, Any]]:
        """GET one daily endpoint for a date.

        Oura answers either with a single document or with a
        ``{"data": [...], "next_token": ...}`` collection; both are
        normalized to a list of documents.

        Raises:
            ExternalServiceError: On transport failure, non-200 status or bad JSON
        """
        path = f"/{endpoint}"
        try:
            response = await self._client.get(path, params={"date": day.isoformat()})
        except httpx.HTTPError as e:
            raise ExternalServiceError(
                f"oura API request failed: {endpoint}", {"endpoint": endpoint}
            ) from e

        if response.status_code != 200:
            raise ExternalServiceError(
                f"oura API returned {response.status_code}",
                {"endpoint": endpoint, "status_code": response.status_code},
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise ExternalServiceError(
                "oura API returned invalid JSON", {"endpoint": endpoint}
            ) from e

        if isinstance(payload, dict) and isinstance(payload.get("data"), list):
            return payload["data"]
        if isinstance(payload, dict):
            return [payload]

        raise ExternalServiceError("oura API returned an unexpected body", {"endpoint": endpoint})
