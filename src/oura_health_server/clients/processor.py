"""Client for the data processor's ingest endpoint."""

from types import TracebackType
from typing import Any

import httpx

from oura_health_server.core.errors import ExternalServiceError


class ProcessorClient:
    """POST metric payloads to ``{base_url}/api/v1/ingest``."""

    def __init__(
        self,
        base_url: str,
        api_key: str | None = None,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        headers = {"X-API-Key": api_key} if api_key else {}
        self._client = httpx.AsyncClient(
            base_url=base_url,
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    async def __aenter__(self) -> "ProcessorClient":
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

    async def send(self, metric_type: str, user_id: str, data: dict[str, Any]) -> None:
        """Forward one metric to the processor.

        Raises:
            ExternalServiceError: On transport failure or a non-2xx response
        """
        body = {"type": metric_type, "user_id": user_id, "data": data}
        try:
            response = await self._client.post("/api/v1/ingest", json=body)
        except httpx.HTTPError as e:
            raise ExternalServiceError(
                "processor request failed", {"metric_type": metric_type}
            ) from e

        if not response.is_success:
            raise ExternalServiceError(
                f"processor returned {response.status_code}",
                {"metric_type": metric_type, "status_code": response.status_code},
            )
