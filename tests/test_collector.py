"""Tests for the Oura collector, its HTTP clients and the scheduler.

Oura and the data processor are both replaced with httpx.MockTransport.
"""

import asyncio
import json
from datetime import UTC, date, datetime, timedelta

import httpx
import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from oura_health_server.clients.oura import OuraClient
from oura_health_server.clients.processor import ProcessorClient
from oura_health_server.core.errors import ExternalServiceError, NotFoundError, TokenExpiredError
from oura_health_server.core.metrics import MetricsCollector
from oura_health_server.models.oauth_token import OURA_PROVIDER, OAuthToken
from oura_health_server.models.user import User
from oura_health_server.repositories.oauth_tokens import OAuthTokenRepository
from oura_health_server.services.collector import CollectionResult, CollectorService
from oura_health_server.services.scheduler import CollectorScheduler

OURA_BASE = "https://oura.test/v2/usercollection"
DAY = date(2026, 1, 20)

OURA_DOCUMENTS = {
    "daily_sleep": {
        "data": [
            {"id": "sleep-1", "day": "2026-01-20", "score": 82, "total_sleep_duration": 27000},
            {"id": "sleep-pending", "day": "2026-01-20", "score": None},
        ]
    },
    "daily_activity": {
        "data": [
            {
                "id": "act-1",
                "day": "2026-01-20",
                "score": 90,
                "steps": 11000,
                "active_calories": 450,
                "medium_activity_time": 1200,
                "high_activity_time": 300,
            }
        ]
    },
    # Single-document shape
    "daily_readiness": {"id": "ready-1", "day": "2026-01-20", "score": 75},
}


def _oura_handler(
    failing: set[str] | None = None,
    documents: dict[str, object] | None = None,
) -> tuple[list[httpx.Request], httpx.MockTransport]:
    seen: list[httpx.Request] = []
    bodies = {**OURA_DOCUMENTS, **(documents or {})}

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        endpoint = request.url.path.rsplit("/", 1)[-1]
        if failing and endpoint in failing:
            return httpx.Response(503, json={"detail": "unavailable"})
        return httpx.Response(200, json=bodies[endpoint])

    return seen, httpx.MockTransport(handler)


def _processor(status_code: int = 201) -> tuple[list[dict], ProcessorClient]:
    bodies: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        bodies.append(json.loads(request.content))
        return httpx.Response(status_code, json={"status": "success"})

    client = ProcessorClient(
        "http://processor.test", api_key="shared-key", transport=httpx.MockTransport(handler)
    )
    return bodies, client


def _sample(metrics: MetricsCollector, name: str, labels: dict[str, str] | None = None) -> float:
    return metrics.registry.get_sample_value(name, labels or {}) or 0.0


async def _store_token(session: AsyncSession, user: User, expires_in: timedelta) -> None:
    await OAuthTokenRepository(session).save_token(
        OAuthToken(
            user_id=user.id,
            provider=OURA_PROVIDER,
            access_token="oura-access",
            refresh_token="oura-refresh",
            expires_at=datetime.now(UTC) + expires_in,
        )
    )


def _collector(
    session: AsyncSession,
    processor: ProcessorClient,
    metrics: MetricsCollector,
    transport: httpx.MockTransport,
    run_timeout: float = 5.0,
) -> CollectorService:
    return CollectorService(
        OAuthTokenRepository(session),
        processor,
        metrics=metrics,
        oura_base_url=OURA_BASE,
        run_timeout=run_timeout,
        oura_transport=transport,
    )


# =============================================================================
# Collector runs
# =============================================================================


async def test_run_forwards_every_scored_document(
    async_session: AsyncSession, test_user: User, metrics: MetricsCollector
) -> None:
    await _store_token(async_session, test_user, timedelta(hours=1))
    oura_requests, transport = _oura_handler()
    bodies, processor = _processor()

    async with processor:
        result = await _collector(async_session, processor, metrics, transport).run(
            test_user.id, DAY
        )

    assert result.records == {"sleep": 1, "activity": 1, "readiness": 1}
    assert result.errors == {}
    assert [body["type"] for body in bodies] == ["sleep", "activity", "readiness"]
    assert all(body["user_id"] == test_user.id for body in bodies)
    assert bodies[1]["data"]["medium_activity_minutes"] == 20

    assert oura_requests[0].headers["Authorization"] == "Bearer oura-access"
    assert oura_requests[0].url.params["date"] == "2026-01-20"

    assert _sample(metrics, "collector_runs_total") == 1
    assert _sample(metrics, "data_points_collected_total", {"data_type": "sleep"}) == 1
    assert _sample(metrics, "collector_last_successful_run_timestamp_seconds") > 0


async def test_failed_kind_does_not_stop_the_run(
    async_session: AsyncSession, test_user: User, metrics: MetricsCollector
) -> None:
    await _store_token(async_session, test_user, timedelta(hours=1))
    _, transport = _oura_handler(failing={"daily_activity"})
    bodies, processor = _processor()

    async with processor:
        result = await _collector(async_session, processor, metrics, transport).run(
            test_user.id, DAY
        )

    assert result.records == {"sleep": 1, "activity": 0, "readiness": 1}
    assert set(result.errors) == {"activity"}
    assert len(bodies) == 2
    labels = {"data_type": "activity", "error_type": "fetch_failed"}
    assert _sample(metrics, "collector_errors_total", labels) == 1
    assert _sample(metrics, "collector_last_successful_run_timestamp_seconds") == 0


async def test_malformed_document_does_not_stop_the_run(
    async_session: AsyncSession, test_user: User, metrics: MetricsCollector
) -> None:
    await _store_token(async_session, test_user, timedelta(hours=1))
    sleep = {
        "data": [
            "not-a-document",
            {"id": "sleep-1", "day": "2026-01-20", "score": 82, "total_sleep_duration": 27000},
        ]
    }
    _, transport = _oura_handler(documents={"daily_sleep": sleep})
    bodies, processor = _processor()

    async with processor:
        result = await _collector(async_session, processor, metrics, transport).run(
            test_user.id, DAY
        )

    assert result.records == {"sleep": 1, "activity": 1, "readiness": 1}
    assert set(result.errors) == {"sleep"}
    assert [body["type"] for body in bodies] == ["sleep", "activity", "readiness"]
    labels = {"data_type": "sleep", "error_type": "transform_failed"}
    assert _sample(metrics, "collector_errors_total", labels) == 1


async def test_processor_rejection_is_counted(
    async_session: AsyncSession, test_user: User, metrics: MetricsCollector
) -> None:
    await _store_token(async_session, test_user, timedelta(hours=1))
    _, transport = _oura_handler()
    _, processor = _processor(status_code=400)

    async with processor:
        result = await _collector(async_session, processor, metrics, transport).run(
            test_user.id, DAY
        )

    assert result.total_records == 0
    assert set(result.errors) == {"sleep", "activity", "readiness"}
    labels = {"data_type": "sleep", "error_type": "send_failed"}
    assert _sample(metrics, "collector_errors_total", labels) == 1


async def test_missing_token_is_not_found(
    async_session: AsyncSession, test_user: User, metrics: MetricsCollector
) -> None:
    oura_requests, transport = _oura_handler()
    _, processor = _processor()

    async with processor:
        with pytest.raises(NotFoundError):
            await _collector(async_session, processor, metrics, transport).run(test_user.id, DAY)

    assert oura_requests == []
    assert _sample(metrics, "collector_runs_total") == 1


async def test_token_inside_safety_margin_fails_fast(
    async_session: AsyncSession, test_user: User, metrics: MetricsCollector
) -> None:
    """A token expiring within five minutes is treated as expired."""
    await _store_token(async_session, test_user, timedelta(minutes=2))
    oura_requests, transport = _oura_handler()
    _, processor = _processor()

    async with processor:
        with pytest.raises(TokenExpiredError):
            await _collector(async_session, processor, metrics, transport).run(test_user.id, DAY)

    assert oura_requests == []
    labels = {"data_type": "auth", "error_type": "token_expired"}
    assert _sample(metrics, "collector_errors_total", labels) == 1


async def test_run_is_bounded_by_timeout(
    async_session: AsyncSession, test_user: User, metrics: MetricsCollector
) -> None:
    await _store_token(async_session, test_user, timedelta(hours=1))

    async def slow(request: httpx.Request) -> httpx.Response:
        await asyncio.sleep(5)
        return httpx.Response(200, json={"data": []})

    _, processor = _processor()

    async with processor:
        collector = _collector(
            async_session, processor, metrics, httpx.MockTransport(slow), run_timeout=0.05
        )
        result = await collector.run(test_user.id, DAY)

    assert "run" in result.errors
    labels = {"data_type": "run", "error_type": "timeout"}
    assert _sample(metrics, "collector_errors_total", labels) == 1


# =============================================================================
# Clients
# =============================================================================


async def test_oura_client_raises_on_non_200() -> None:
    transport = httpx.MockTransport(lambda request: httpx.Response(401, json={}))

    async with OuraClient("token", base_url=OURA_BASE, transport=transport) as client:
        with pytest.raises(ExternalServiceError, match="oura API returned 401"):
            await client.get_daily_sleep(DAY)


async def test_processor_client_sends_api_key() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(201, json={"status": "success"})

    async with ProcessorClient(
        "http://processor.test", api_key="k", transport=httpx.MockTransport(handler)
    ) as client:
        await client.send("sleep", "user-1", {"oura_id": "s"})

    assert seen[0].url.path == "/api/v1/ingest"
    assert seen[0].headers["X-API-Key"] == "k"
    assert json.loads(seen[0].content) == {
        "type": "sleep",
        "user_id": "user-1",
        "data": {"oura_id": "s"},
    }


# =============================================================================
# Scheduler
# =============================================================================


async def test_scheduler_cycle_records_result() -> None:
    result = CollectionResult(user_id="user-1", day=DAY, records={"sleep": 2})

    async def run_collection() -> CollectionResult:
        return result

    scheduler = CollectorScheduler(run_collection, interval_minutes=60)
    await scheduler._run_cycle()

    status = scheduler.get_status()
    assert status["last_run_stats"]["total_records"] == 2
    assert status["last_run_at"] is not None
    assert status["is_running"] is False


async def test_scheduler_cycle_survives_run_failure() -> None:
    async def run_collection() -> CollectionResult:
        raise TokenExpiredError("OAuth token has expired; re-authorize the app")

    scheduler = CollectorScheduler(run_collection, interval_minutes=60)
    await scheduler._run_cycle()

    assert scheduler.last_run_stats["code"] == "TOKEN_EXPIRED"


async def test_scheduler_start_and_stop() -> None:
    async def run_collection() -> CollectionResult:
        return CollectionResult(user_id="user-1", day=DAY)

    scheduler = CollectorScheduler(run_collection, interval_minutes=30, run_on_start=False)
    await scheduler.start()
    try:
        status = scheduler.get_status()
        assert status["is_running"] is True
        assert status["next_run_at"] is not None
    finally:
        await scheduler.stop()

    assert scheduler.is_running is False
