"""Dashboard and metric history endpoints for the authenticated user."""

from datetime import date, timedelta
from typing import Annotated

from litestar import Router, get
from litestar.params import Parameter
from litestar.status_codes import HTTP_200_OK

from oura_health_server.api.dependencies import metrics_dependencies
from oura_health_server.core.auth import jwt_guard
from oura_health_server.schemas.metrics import (
    ActivityData,
    DashboardData,
    ReadinessData,
    SleepData,
)
from oura_health_server.services.metrics import MetricsService

DEFAULT_HISTORY_DAYS = 30


def _resolve_range(start: date | None, end: date | None) -> tuple[date, date]:
    """Fill in a missing bound so the range defaults to the last 30 days."""
    end = end or date.today()
    start = start or end - timedelta(days=DEFAULT_HISTORY_DAYS)
    return start, end


StartParam = Annotated[
    date | None, Parameter(query="start", description="First day (YYYY-MM-DD)")
]
EndParam = Annotated[date | None, Parameter(query="end", description="Last day (YYYY-MM-DD)")]


@get("/dashboard", status_code=HTTP_200_OK)
async def get_dashboard(
    current_user_id: str,
    metrics_service: MetricsService,
    days: Annotated[int, Parameter(query="days", description="Window length, 1-365")] = 7,
) -> DashboardData:
    """Summary and recent history for the last ``days`` days.

    Example:
        GET /api/v1/dashboard?days=30
    """
    return await metrics_service.get_dashboard(current_user_id, days)


@get("/sleep", status_code=HTTP_200_OK)
async def get_sleep(
    current_user_id: str,
    metrics_service: MetricsService,
    start: StartParam = None,
    end: EndParam = None,
) -> list[SleepData]:
    """Sleep history, most recent first.

    Example:
        GET /api/v1/sleep?start=2026-01-01&end=2026-01-31
    """
    start, end = _resolve_range(start, end)
    return await metrics_service.get_sleep_history(current_user_id, start, end)


@get("/activity", status_code=HTTP_200_OK)
async def get_activity(
    current_user_id: str,
    metrics_service: MetricsService,
    start: StartParam = None,
    end: EndParam = None,
) -> list[ActivityData]:
    """Activity history, most recent first."""
    start, end = _resolve_range(start, end)
    return await metrics_service.get_activity_history(current_user_id, start, end)


@get("/readiness", status_code=HTTP_200_OK)
async def get_readiness(
    current_user_id: str,
    metrics_service: MetricsService,
    start: StartParam = None,
    end: EndParam = None,
) -> list[ReadinessData]:
    """Readiness history, most recent first."""
    start, end = _resolve_range(start, end)
    return await metrics_service.get_readiness_history(current_user_id, start, end)


metrics_router = Router(
    path="/api/v1",
    route_handlers=[get_dashboard, get_sleep, get_activity, get_readiness],
    dependencies=metrics_dependencies,
    guards=[jwt_guard],
    tags=["metrics"],
)
