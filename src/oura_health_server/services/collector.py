"""Oura collector: fetch a day of Oura data and forward it to the processor.

Each metric kind is handled independently. A failed fetch, transform or send
for one kind is logged and counted, and the run moves on to the next kind.
Only an unusable token stops a run before it starts.
"""

import asyncio
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, date, datetime, timedelta
from typing import Any

import httpx
import structlog
from sqlalchemy.exc import SQLAlchemyError

from oura_health_server.clients.oura import DEFAULT_BASE_URL, OuraClient
from oura_health_server.clients.processor import ProcessorClient
from oura_health_server.core.errors import (
    AppError,
    DatabaseError,
    NotFoundError,
    TokenExpiredError,
)
from oura_health_server.core.metrics import MetricsCollector
from oura_health_server.models.oauth_token import OURA_PROVIDER
from oura_health_server.repositories.oauth_tokens import OAuthTokenRepository
from oura_health_server.schemas.metrics import MetricType
from oura_health_server.transformers import (
    ActivityTransformer,
    ReadinessTransformer,
    SleepTransformer,
)

logger = structlog.get_logger()

Fetch = Callable[[OuraClient, date], Awaitable[list[dict[str, Any]]]]
Transform = Callable[[dict[str, Any]], dict[str, Any] | None]

_STEPS: list[tuple[MetricType, Fetch, Transform]] = [
    (MetricType.SLEEP, OuraClient.get_daily_sleep, SleepTransformer.transform),
    (MetricType.ACTIVITY, OuraClient.get_daily_activity, ActivityTransformer.transform),
    (MetricType.READINESS, OuraClient.get_daily_readiness, ReadinessTransformer.transform),
]


@dataclass
class CollectionResult:
    """Outcome of one collector run.

    Attributes:
        user_id: User whose data was collected
        day: Day that was collected
        records: Records forwarded per metric type
        errors: Error message per metric type (or "run" for run-level failures)
        duration_seconds: Wall time of the run
    """

    user_id: str
    day: date
    records: dict[str, int] = field(default_factory=dict)
    errors: dict[str, str] = field(default_factory=dict)
    duration_seconds: float = 0.0

    @property
    def has_errors(self) -> bool:
        return bool(self.errors)

    @property
    def total_records(self) -> int:
        return sum(self.records.values())

    def to_dict(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "day": self.day.isoformat(),
            "records": dict(self.records),
            "errors": dict(self.errors),
            "total_records": self.total_records,
            "duration_seconds": round(self.duration_seconds, 3),
        }


class CollectorService:
    """Collect one day of Oura data for a user."""

    def __init__(
        self,
        token_repository: OAuthTokenRepository,
        processor: ProcessorClient,
        metrics: MetricsCollector | None = None,
        oura_base_url: str = DEFAULT_BASE_URL,
        run_timeout: float = 30.0,
        token_margin: timedelta = timedelta(minutes=5),
        oura_transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize collector.

        Args:
            token_repository: Where the user's Oura token is stored
            processor: Client for the data processor
            metrics: Prometheus collector for run statistics
            oura_base_url: Oura usercollection base URL
            run_timeout: Time limit for the whole run in seconds
            token_margin: Tokens expiring within this window are unusable
            oura_transport: Optional httpx transport for the Oura client (tests)
        """
        self.token_repository = token_repository
        self.processor = processor
        self.metrics = metrics
        self.oura_base_url = oura_base_url
        self.run_timeout = run_timeout
        self.token_margin = token_margin
        self.oura_transport = oura_transport
        self.logger = logger.bind(service="collector")

    async def run(self, user_id: str, day: date | None = None) -> CollectionResult:
        """Fetch, transform and forward all metric kinds for one day.

        Args:
            user_id: User whose token is used
            day: Day to collect (default: today, UTC)

        Returns:
            Per-kind record counts and errors

        Raises:
            NotFoundError: If the user has no Oura token
            TokenExpiredError: If the token is expired or about to expire
            DatabaseError: If the token lookup fails
        """
        day = day or datetime.now(UTC).date()
        started = time.monotonic()
        result = CollectionResult(user_id=user_id, day=day)

        try:
            access_token = await self._load_access_token(user_id)
        except AppError as e:
            self._record_error("auth", e.code.lower())
            result.errors["auth"] = e.message
            self._finish(result, started)
            raise

        self.logger.info("Starting collection", user_id=user_id, day=day.isoformat())

        try:
            async with asyncio.timeout(self.run_timeout):
                async with OuraClient(
                    access_token,
                    base_url=self.oura_base_url,
                    transport=self.oura_transport,
                ) as client:
                    for kind, fetch, transform in _STEPS:
                        await self._collect_kind(client, result, kind, fetch, transform)
        except TimeoutError:
            self.logger.error(
                "Collection run timed out",
                user_id=user_id,
                timeout_seconds=self.run_timeout,
            )
            self._record_error("run", "timeout")
            result.errors["run"] = f"timed out after {self.run_timeout}s"

        self._finish(result, started)
        return result

    async def _load_access_token(self, user_id: str) -> str:
        try:
            token = await self.token_repository.get_token(user_id, OURA_PROVIDER)
        except SQLAlchemyError as e:
            raise DatabaseError("failed to get OAuth token") from e

        if token is None:
            raise NotFoundError(
                "no OAuth token found for user; authorize the app first",
                {"user_id": user_id},
            )
        if token.is_expired(self.token_margin):
            raise TokenExpiredError(
                "OAuth token has expired; re-authorize the app",
                {"user_id": user_id},
            )
        return token.access_token

    async def _collect_kind(
        self,
        client: OuraClient,
        result: CollectionResult,
        kind: MetricType,
        fetch: Fetch,
        transform: Transform,
    ) -> None:
        """Run fetch -> transform -> send for one metric kind, recording failures."""
        name = kind.value
        result.records[name] = 0

        try:
            documents = await fetch(client, result.day)
        except AppError as e:
            self.logger.error("Failed to fetch data", metric_type=name, error=str(e))
            self._record_error(name, "fetch_failed")
            result.errors[name] = e.message
            return

        for document in documents:
            try:
                payload = transform(document)
            except (AttributeError, KeyError, TypeError, ValueError) as e:
                self.logger.error("Failed to transform data", metric_type=name, error=str(e))
                self._record_error(name, "transform_failed")
                result.errors[name] = f"transform failed: {e}"
                continue

            if payload is None:
                self.logger.debug("Skipping unscored document", metric_type=name)
                continue

            try:
                await self.processor.send(name, result.user_id, payload)
            except AppError as e:
                self.logger.error(
                    "Failed to send data to processor", metric_type=name, error=str(e)
                )
                self._record_error(name, "send_failed")
                result.errors[name] = e.message
                continue

            result.records[name] += 1
            if self.metrics is not None:
                self.metrics.record_data_points(name)

        self.logger.info(
            "Collected data",
            metric_type=name,
            records=result.records[name],
        )

    def _record_error(self, data_type: str, error_type: str) -> None:
        if self.metrics is not None:
            self.metrics.record_collector_error(data_type, error_type)

    def _finish(self, result: CollectionResult, started: float) -> None:
        result.duration_seconds = time.monotonic() - started
        success = not result.has_errors
        if self.metrics is not None:
            self.metrics.record_collector_run(result.duration_seconds, success=success)

        log = self.logger.bind(
            user_id=result.user_id,
            duration_seconds=round(result.duration_seconds, 3),
            data_points=result.total_records,
        )
        if success:
            log.info("Collection completed successfully")
        else:
            log.warning("Collection completed with errors", errors=result.errors)
