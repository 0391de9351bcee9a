"""Data-processor endpoints: ingest metric payloads and read stored rows."""

from datetime import date, timedelta
from typing import Annotated, Any

from litestar import Router, get, post
from litestar.di import Provide
from litestar.params import Parameter
from litestar.status_codes import HTTP_200_OK, HTTP_201_CREATED

from oura_health_server.api.dependencies import provide_metrics_service
from oura_health_server.core.auth import processor_api_key_guard
from oura_health_server.schemas.metrics import IngestRequest
from oura_health_server.services.metrics import MetricsService

DEFAULT_LIST_DAYS = 7


@post("/ingest", status_code=HTTP_201_CREATED)
async def ingest(data: IngestRequest, metrics_service: MetricsService) -> dict[str, str]:
    """Validate and store one metric payload.

    Example:
        POST /api/v1/ingest
        {"type": "sleep", "user_id": "...", "data": {"id": "...", "day": "2026-01-20", "score": 82}}
    """
    await metrics_service.ingest(data.user_id, data.type, data.data)
    return {"status": "success"}


@get("/metrics/{metric_type:str}", status_code=HTTP_200_OK)
async def list_metrics(
    metric_type: str,
    metrics_service: MetricsService,
    start: Annotated[date | None, Parameter(query="start")] = None,
    end: Annotated[date | None, Parameter(query="end")] = None,
    user_id: Annotated[str | None, Parameter(query="user_id")] = None,
) -> list[dict[str, Any]]:
    """Stored rows of one metric type, defaulting to the last 7 days.

    Example:
        GET /api/v1/metrics/sleep?user_id=...&start=2026-01-01
    """
    end = end or date.today()
    start = start or end - timedelta(days=DEFAULT_LIST_DAYS)
    return await metrics_service.list_metrics(metric_type, start, end, user_id=user_id)


ingest_router = Router(
    path="/api/v1",
    route_handlers=[ingest, list_metrics],
    dependencies={"metrics_service": Provide(provide_metrics_service, sync_to_thread=False)},
    guards=[processor_api_key_guard],
    tags=["processor"],
)
