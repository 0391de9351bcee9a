"""Tests for metric ingestion, history and the dashboard.

The repository is an AsyncMock so each test can assert exactly what reached
storage.
"""

from datetime import date, timedelta
from unittest.mock import AsyncMock

import pytest
from sqlalchemy.exc import OperationalError

from oura_health_server.core.errors import BadRequestError, InternalError
from oura_health_server.core.metrics import MetricsCollector
from oura_health_server.models.sleep import SleepMetric
from oura_health_server.repositories.metrics import DashboardSummary, MetricsRepository
from oura_health_server.schemas.metrics import SleepData
from oura_health_server.services.metrics import MetricsService


def _db_error() -> OperationalError:
    return OperationalError("SELECT 1", {}, Exception("database is locked"))


@pytest.fixture
def repository() -> AsyncMock:
    return AsyncMock(spec=MetricsRepository)


@pytest.fixture
def service(repository: AsyncMock, metrics: MetricsCollector) -> MetricsService:
    return MetricsService(repository, metrics=metrics)


def _sample(metrics: MetricsCollector, name: str, labels: dict[str, str] | None = None) -> float:
    value = metrics.registry.get_sample_value(name, labels or {})
    return value or 0.0


# =============================================================================
# Ingestion
# =============================================================================


@pytest.mark.parametrize("score", [150, -10])
async def test_out_of_range_score_never_reaches_storage(
    service: MetricsService, repository: AsyncMock, score: int
) -> None:
    """Scores outside 0-100 are rejected before the repository is touched."""
    data = {"oura_id": "sleep-1", "day": "2026-01-20", "score": score, "duration": 28800}

    with pytest.raises(BadRequestError, match="sleep score must be between 0 and 100"):
        await service.ingest_sleep_data("user-1", data)

    repository.save_sleep_metric.assert_not_awaited()


async def test_ingest_sleep_stores_entity(service: MetricsService, repository: AsyncMock) -> None:
    await service.ingest_sleep_data(
        "user-1", SleepData(oura_id="sleep-1", day=date(2026, 1, 20), score=82, duration=27000)
    )

    repository.save_sleep_metric.assert_awaited_once()
    stored = repository.save_sleep_metric.await_args.args[0]
    assert isinstance(stored, SleepMetric)
    assert (stored.user_id, stored.oura_id, stored.score, stored.duration) == (
        "user-1",
        "sleep-1",
        82,
        27000,
    )


async def test_ingest_accepts_provider_id_key(
    service: MetricsService, repository: AsyncMock
) -> None:
    """Payloads may carry Oura's raw ``id`` instead of ``oura_id``."""
    await service.ingest("user-1", "readiness", {"id": "ready-1", "day": "2026-01-20", "score": 77})

    stored = repository.save_readiness_metric.await_args.args[0]
    assert stored.oura_id == "ready-1"


async def test_ingest_dispatches_by_type(service: MetricsService, repository: AsyncMock) -> None:
    await service.ingest(
        "user-1",
        "activity",
        {"oura_id": "act-1", "day": "2026-01-20", "score": 90, "steps": 12000},
    )

    repository.save_activity_metric.assert_awaited_once()
    repository.save_sleep_metric.assert_not_awaited()


async def test_ingest_unknown_type(service: MetricsService, repository: AsyncMock) -> None:
    with pytest.raises(BadRequestError, match="unknown metric type"):
        await service.ingest("user-1", "heart_rate", {"oura_id": "x"})


async def test_ingest_requires_user(service: MetricsService, repository: AsyncMock) -> None:
    with pytest.raises(BadRequestError, match="user ID is required"):
        await service.ingest_readiness_data("", {"oura_id": "r", "day": "2026-01-20", "score": 50})

    repository.save_readiness_metric.assert_not_awaited()


@pytest.mark.parametrize(
    ("payload", "message"),
    [
        ({"steps": -1}, "calories and steps cannot be negative"),
        ({"active_calories": -5}, "calories and steps cannot be negative"),
        ({"high_activity_minutes": -1}, "activity minutes cannot be negative"),
    ],
)
async def test_negative_activity_values_rejected(
    service: MetricsService, repository: AsyncMock, payload: dict[str, int], message: str
) -> None:
    data = {"oura_id": "act-1", "day": "2026-01-20", "score": 70, **payload}

    with pytest.raises(BadRequestError, match=message):
        await service.ingest_activity_data("user-1", data)

    repository.save_activity_metric.assert_not_awaited()


async def test_negative_sleep_duration_rejected(
    service: MetricsService, repository: AsyncMock
) -> None:
    data = {"oura_id": "s", "day": "2026-01-20", "score": 70, "duration": -60}

    with pytest.raises(BadRequestError, match="sleep duration cannot be negative"):
        await service.ingest_sleep_data("user-1", data)


async def test_malformed_payload_is_bad_request(
    service: MetricsService, repository: AsyncMock, metrics: MetricsCollector
) -> None:
    with pytest.raises(BadRequestError, match="invalid sleep data") as exc_info:
        await service.ingest_sleep_data("user-1", {"day": "not-a-date", "score": "high"})

    assert "errors" in exc_info.value.details
    assert _sample(metrics, "processing_errors_total", {"error_type": "validation"}) == 1


async def test_storage_failure_is_internal_error(
    service: MetricsService, repository: AsyncMock, metrics: MetricsCollector
) -> None:
    repository.save_sleep_metric.side_effect = _db_error()

    with pytest.raises(InternalError, match="failed to save sleep data") as exc_info:
        await service.ingest_sleep_data(
            "user-1", {"oura_id": "s", "day": "2026-01-20", "score": 70}
        )

    assert isinstance(exc_info.value.__cause__, OperationalError)
    assert _sample(metrics, "db_errors_total") == 1


async def test_successful_ingest_counts_processed(
    service: MetricsService, metrics: MetricsCollector
) -> None:
    await service.ingest("user-1", "sleep", {"oura_id": "s", "day": "2026-01-20", "score": 70})

    assert _sample(metrics, "processed_records_total", {"metric_type": "sleep"}) == 1


# =============================================================================
# History
# =============================================================================


async def test_history_rejects_reversed_range(
    service: MetricsService, repository: AsyncMock
) -> None:
    with pytest.raises(BadRequestError, match="end date must be after start date"):
        await service.get_sleep_history("user-1", date(2026, 1, 10), date(2026, 1, 1))

    repository.get_sleep_metrics.assert_not_awaited()


async def test_history_rejects_range_over_a_year(service: MetricsService) -> None:
    start = date(2025, 1, 1)

    with pytest.raises(BadRequestError, match="date range cannot exceed 365 days"):
        await service.get_activity_history("user-1", start, start + timedelta(days=366))


async def test_history_accepts_exactly_a_year(
    service: MetricsService, repository: AsyncMock
) -> None:
    repository.get_readiness_metrics.return_value = []
    start = date(2025, 1, 1)

    result = await service.get_readiness_history("user-1", start, start + timedelta(days=365))

    assert result == []


async def test_history_maps_rows_to_dtos(service: MetricsService, repository: AsyncMock) -> None:
    repository.get_sleep_metrics.return_value = [
        SleepMetric(user_id="user-1", oura_id="s2", day=date(2026, 1, 2), score=80, duration=100),
        SleepMetric(user_id="user-1", oura_id="s1", day=date(2026, 1, 1), score=70, duration=200),
    ]

    result = await service.get_sleep_history("user-1", date(2026, 1, 1), date(2026, 1, 31))

    assert [entry.oura_id for entry in result] == ["s2", "s1"]
    assert result[0] == SleepData(oura_id="s2", day=date(2026, 1, 2), score=80, duration=100)
    repository.get_sleep_metrics.assert_awaited_once_with(
        "user-1", date(2026, 1, 1), date(2026, 1, 31)
    )


async def test_history_query_failure_is_internal_error(
    service: MetricsService, repository: AsyncMock
) -> None:
    repository.get_activity_metrics.side_effect = _db_error()

    with pytest.raises(InternalError, match="failed to retrieve activity history"):
        await service.get_activity_history("user-1", date(2026, 1, 1), date(2026, 1, 2))


async def test_list_metrics_without_user(service: MetricsService, repository: AsyncMock) -> None:
    """The processor read path may list rows across all users."""
    repository.get_sleep_metrics.return_value = [
        SleepMetric(
            id="row-1", user_id="user-9", oura_id="s", day=date(2026, 1, 2), score=60, duration=0
        )
    ]

    rows = await service.list_metrics("sleep", date(2026, 1, 1), date(2026, 1, 7))

    repository.get_sleep_metrics.assert_awaited_once_with(None, date(2026, 1, 1), date(2026, 1, 7))
    assert rows[0]["user_id"] == "user-9"
    assert rows[0]["oura_id"] == "s"


# =============================================================================
# Dashboard
# =============================================================================


@pytest.mark.parametrize(
    ("days", "message"),
    [
        (0, "days must be greater than 0"),
        (-3, "days must be greater than 0"),
        (366, "days cannot exceed 365"),
    ],
)
async def test_dashboard_rejects_bad_window(
    service: MetricsService, repository: AsyncMock, days: int, message: str
) -> None:
    with pytest.raises(BadRequestError, match=message):
        await service.get_dashboard("user-1", days)

    repository.get_dashboard_summary.assert_not_awaited()


async def test_dashboard_survives_failing_recent_queries(
    service: MetricsService, repository: AsyncMock
) -> None:
    """The summary is returned as-is even when every recent panel fails."""
    repository.get_dashboard_summary.return_value = DashboardSummary(
        total_days=30,
        avg_sleep_score=85.5,
        avg_activity_score=78.25,
        avg_readiness_score=81.0,
        total_steps=312000,
        avg_sleep_duration_hours=7.5,
    )
    repository.get_sleep_metrics.side_effect = _db_error()
    repository.get_activity_metrics.side_effect = _db_error()
    repository.get_readiness_metrics.side_effect = _db_error()

    dashboard = await service.get_dashboard("user-1", 30)

    repository.get_dashboard_summary.assert_awaited_once_with("user-1", 30)
    assert dashboard.summary.model_dump() == {
        "total_days": 30,
        "avg_sleep_score": 85.5,
        "avg_activity_score": 78.25,
        "avg_readiness_score": 81.0,
        "total_steps": 312000,
        "avg_sleep_duration_hours": 7.5,
    }
    assert dashboard.recent_sleep == []
    assert dashboard.recent_activity == []
    assert dashboard.recent_readiness == []


async def test_dashboard_survives_unexpected_recent_errors(
    service: MetricsService, repository: AsyncMock
) -> None:
    """Non-database failures in a recent panel also degrade to an empty list."""
    repository.get_dashboard_summary.return_value = DashboardSummary(total_days=7)
    repository.get_sleep_metrics.side_effect = RuntimeError("connection reset")
    repository.get_activity_metrics.side_effect = OSError("network unreachable")
    repository.get_readiness_metrics.return_value = []

    dashboard = await service.get_dashboard("user-1", 7)

    assert dashboard.summary.total_days == 7
    assert dashboard.recent_sleep == []
    assert dashboard.recent_activity == []
    assert dashboard.recent_readiness == []


async def test_dashboard_recent_window_capped_at_a_week(
    service: MetricsService, repository: AsyncMock
) -> None:
    repository.get_dashboard_summary.return_value = DashboardSummary()
    repository.get_sleep_metrics.return_value = []
    repository.get_activity_metrics.return_value = []
    repository.get_readiness_metrics.return_value = []

    await service.get_dashboard("user-1", 90)

    _, start, end = repository.get_sleep_metrics.await_args.args
    assert end == date.today()
    assert (end - start).days == 7


async def test_dashboard_summary_failure_is_fatal(
    service: MetricsService, repository: AsyncMock
) -> None:
    repository.get_dashboard_summary.side_effect = _db_error()

    with pytest.raises(InternalError, match="failed to retrieve dashboard data"):
        await service.get_dashboard("user-1", 7)
