"""Metric ingestion, history and dashboard service."""

from collections.abc import Mapping
from datetime import date, timedelta
from typing import Any, NoReturn, TypeVar

import structlog
from pydantic import BaseModel, ValidationError
from sqlalchemy.exc import SQLAlchemyError

from oura_health_server.core.errors import BadRequestError, InternalError
from oura_health_server.core.metrics import MetricsCollector
from oura_health_server.models.activity import ActivityMetric
from oura_health_server.models.readiness import ReadinessMetric
from oura_health_server.models.sleep import SleepMetric
from oura_health_server.repositories.metrics import DashboardSummary, MetricsRepository
from oura_health_server.schemas.metrics import (
    ActivityData,
    DashboardData,
    DashboardSummaryData,
    MetricType,
    ReadinessData,
    SleepData,
)

logger = structlog.get_logger()

MAX_RANGE_DAYS = 365
MAX_DASHBOARD_DAYS = 365
RECENT_DAYS = 7

DtoT = TypeVar("DtoT", bound=BaseModel)


# =============================================================================
# Entity <-> DTO mapping
# =============================================================================


def sleep_to_entity(user_id: str, dto: SleepData) -> SleepMetric:
    return SleepMetric(
        user_id=user_id,
        oura_id=dto.oura_id,
        day=dto.day,
        score=dto.score,
        duration=dto.duration,
    )


def activity_to_entity(user_id: str, dto: ActivityData) -> ActivityMetric:
    return ActivityMetric(
        user_id=user_id,
        oura_id=dto.oura_id,
        day=dto.day,
        score=dto.score,
        active_calories=dto.active_calories,
        steps=dto.steps,
        medium_activity_minutes=dto.medium_activity_minutes,
        high_activity_minutes=dto.high_activity_minutes,
    )


def readiness_to_entity(user_id: str, dto: ReadinessData) -> ReadinessMetric:
    return ReadinessMetric(
        user_id=user_id,
        oura_id=dto.oura_id,
        day=dto.day,
        score=dto.score,
    )


def sleep_to_dto(entity: SleepMetric) -> SleepData:
    return SleepData(
        oura_id=entity.oura_id,
        day=entity.day,
        score=entity.score,
        duration=entity.duration,
    )


def activity_to_dto(entity: ActivityMetric) -> ActivityData:
    return ActivityData(
        oura_id=entity.oura_id,
        day=entity.day,
        score=entity.score,
        active_calories=entity.active_calories,
        steps=entity.steps,
        medium_activity_minutes=entity.medium_activity_minutes,
        high_activity_minutes=entity.high_activity_minutes,
    )


def readiness_to_dto(entity: ReadinessMetric) -> ReadinessData:
    return ReadinessData(oura_id=entity.oura_id, day=entity.day, score=entity.score)


def summary_to_dto(summary: DashboardSummary) -> DashboardSummaryData:
    return DashboardSummaryData(
        total_days=summary.total_days,
        avg_sleep_score=summary.avg_sleep_score,
        avg_activity_score=summary.avg_activity_score,
        avg_readiness_score=summary.avg_readiness_score,
        total_steps=summary.total_steps,
        avg_sleep_duration_hours=summary.avg_sleep_duration_hours,
    )


# =============================================================================
# Service
# =============================================================================


class MetricsService:
    """Validate and store daily metrics, and read them back.

    Stateless between calls; all persistence goes through the repository.
    """

    def __init__(
        self,
        repository: MetricsRepository,
        metrics: MetricsCollector | None = None,
    ) -> None:
        """Initialize metrics service.

        Args:
            repository: Metrics repository
            metrics: Prometheus collector to record ingestion outcomes on
        """
        self.repository = repository
        self.metrics = metrics
        self.logger = logger.bind(service="metrics")

    # -------------------------------------------------------------------------
    # Ingestion
    # -------------------------------------------------------------------------

    async def ingest(self, user_id: str, metric_type: str, data: Mapping[str, Any]) -> None:
        """Ingest one metric payload of the given type.

        Args:
            user_id: Owner of the metric
            metric_type: sleep, activity or readiness
            data: Raw payload for that type

        Raises:
            BadRequestError: For an unknown type or invalid payload
            InternalError: If storage fails
        """
        try:
            kind = MetricType(metric_type)
        except ValueError as e:
            self._record_error("unknown_type")
            raise BadRequestError("unknown metric type", {"type": metric_type}) from e

        if kind is MetricType.SLEEP:
            await self.ingest_sleep_data(user_id, data)
        elif kind is MetricType.ACTIVITY:
            await self.ingest_activity_data(user_id, data)
        else:
            await self.ingest_readiness_data(user_id, data)

    async def ingest_sleep_data(self, user_id: str, data: SleepData | Mapping[str, Any]) -> None:
        """Validate and upsert a sleep metric.

        Raises:
            BadRequestError: If user_id is empty or the data is invalid
            InternalError: If storage fails
        """
        self._require_user(user_id)
        dto = self._parse(SleepData, data, MetricType.SLEEP)

        self._check_score(MetricType.SLEEP, dto.score)
        if dto.duration < 0:
            self._reject("sleep duration cannot be negative")

        try:
            await self.repository.save_sleep_metric(sleep_to_entity(user_id, dto))
        except SQLAlchemyError as e:
            self._storage_failed(MetricType.SLEEP, user_id, dto.oura_id, e)
            raise InternalError("failed to save sleep data") from e

        self._stored(MetricType.SLEEP, user_id, dto.oura_id, dto.day)

    async def ingest_activity_data(
        self, user_id: str, data: ActivityData | Mapping[str, Any]
    ) -> None:
        """Validate and upsert an activity metric.

        Raises:
            BadRequestError: If user_id is empty or the data is invalid
            InternalError: If storage fails
        """
        self._require_user(user_id)
        dto = self._parse(ActivityData, data, MetricType.ACTIVITY)

        self._check_score(MetricType.ACTIVITY, dto.score)
        if dto.active_calories < 0 or dto.steps < 0:
            self._reject("calories and steps cannot be negative")
        if dto.medium_activity_minutes < 0 or dto.high_activity_minutes < 0:
            self._reject("activity minutes cannot be negative")

        try:
            await self.repository.save_activity_metric(activity_to_entity(user_id, dto))
        except SQLAlchemyError as e:
            self._storage_failed(MetricType.ACTIVITY, user_id, dto.oura_id, e)
            raise InternalError("failed to save activity data") from e

        self._stored(MetricType.ACTIVITY, user_id, dto.oura_id, dto.day)

    async def ingest_readiness_data(
        self, user_id: str, data: ReadinessData | Mapping[str, Any]
    ) -> None:
        """Validate and upsert a readiness metric.

        Raises:
            BadRequestError: If user_id is empty or the data is invalid
            InternalError: If storage fails
        """
        self._require_user(user_id)
        dto = self._parse(ReadinessData, data, MetricType.READINESS)

        self._check_score(MetricType.READINESS, dto.score)

        try:
            await self.repository.save_readiness_metric(readiness_to_entity(user_id, dto))
        except SQLAlchemyError as e:
            self._storage_failed(MetricType.READINESS, user_id, dto.oura_id, e)
            raise InternalError("failed to save readiness data") from e

        self._stored(MetricType.READINESS, user_id, dto.oura_id, dto.day)

    # -------------------------------------------------------------------------
    # History
    # -------------------------------------------------------------------------

    async def get_sleep_history(self, user_id: str, start: date, end: date) -> list[SleepData]:
        """Return sleep metrics in [start, end], most recent first.

        Raises:
            BadRequestError: If user_id is empty or the range is invalid
            InternalError: If the query fails
        """
        self._check_range(user_id, start, end)
        try:
            rows = await self.repository.get_sleep_metrics(user_id, start, end)
        except SQLAlchemyError as e:
            self._query_failed(MetricType.SLEEP, user_id, e)
            raise InternalError("failed to retrieve sleep history") from e
        return [sleep_to_dto(row) for row in rows]

    async def get_activity_history(
        self, user_id: str, start: date, end: date
    ) -> list[ActivityData]:
        """Return activity metrics in [start, end], most recent first."""
        self._check_range(user_id, start, end)
        try:
            rows = await self.repository.get_activity_metrics(user_id, start, end)
        except SQLAlchemyError as e:
            self._query_failed(MetricType.ACTIVITY, user_id, e)
            raise InternalError("failed to retrieve activity history") from e
        return [activity_to_dto(row) for row in rows]

    async def get_readiness_history(
        self, user_id: str, start: date, end: date
    ) -> list[ReadinessData]:
        """Return readiness metrics in [start, end], most recent first."""
        self._check_range(user_id, start, end)
        try:
            rows = await self.repository.get_readiness_metrics(user_id, start, end)
        except SQLAlchemyError as e:
            self._query_failed(MetricType.READINESS, user_id, e)
            raise InternalError("failed to retrieve readiness history") from e
        return [readiness_to_dto(row) for row in rows]

    async def list_metrics(
        self, metric_type: str, start: date, end: date, user_id: str | None = None
    ) -> list[dict[str, Any]]:
        """Return stored rows of one type in [start, end], optionally for one user.

        Used by the processor's read endpoint, which exposes raw rows
        (including ``user_id`` and timestamps) rather than DTOs.

        Raises:
            BadRequestError: For an unknown type or an invalid range
            InternalError: If the query fails
        """
        try:
            kind = MetricType(metric_type)
        except ValueError as e:
            raise BadRequestError("unknown metric type", {"type": metric_type}) from e
        self._check_dates(start, end)

        fetch = {
            MetricType.SLEEP: self.repository.get_sleep_metrics,
            MetricType.ACTIVITY: self.repository.get_activity_metrics,
            MetricType.READINESS: self.repository.get_readiness_metrics,
        }[kind]
        try:
            rows = await fetch(user_id, start, end)
        except SQLAlchemyError as e:
            self._query_failed(kind, user_id or "all", e)
            raise InternalError(f"failed to retrieve {kind.value} metrics") from e
        return [_row_to_dict(row) for row in rows]

    # -------------------------------------------------------------------------
    # Dashboard
    # -------------------------------------------------------------------------

    async def get_dashboard(self, user_id: str, days: int) -> DashboardData:
        """Build the dashboard for the last ``days`` days.

        The summary is required; each recent-history panel (capped at a week)
        degrades to an empty list if its query fails.

        Args:
            user_id: Owner of the metrics
            days: Window length, 1-365

        Returns:
            Summary plus recent sleep, activity and readiness

        Raises:
            BadRequestError: If user_id is empty or days is out of range
            InternalError: If the summary query fails
        """
        self._require_user(user_id)
        if days <= 0:
            raise BadRequestError("days must be greater than 0")
        if days > MAX_DASHBOARD_DAYS:
            raise BadRequestError(f"days cannot exceed {MAX_DASHBOARD_DAYS}")

        try:
            summary = await self.repository.get_dashboard_summary(user_id, days)
        except SQLAlchemyError as e:
            self._query_failed("dashboard", user_id, e)
            raise InternalError("failed to retrieve dashboard data") from e

        end = date.today()
        start = end - timedelta(days=min(days, RECENT_DAYS))

        recent_sleep: list[SleepData] = await self._recent(
            self.get_sleep_history, MetricType.SLEEP, user_id, start, end
        )
        recent_activity: list[ActivityData] = await self._recent(
            self.get_activity_history, MetricType.ACTIVITY, user_id, start, end
        )
        recent_readiness: list[ReadinessData] = await self._recent(
            self.get_readiness_history, MetricType.READINESS, user_id, start, end
        )

        self.logger.info(
            "Dashboard data retrieved",
            user_id=user_id,
            days=days,
            recent_sleep=len(recent_sleep),
            recent_activity=len(recent_activity),
            recent_readiness=len(recent_readiness),
        )

        return DashboardData(
            summary=summary_to_dto(summary),
            recent_sleep=recent_sleep,
            recent_activity=recent_activity,
            recent_readiness=recent_readiness,
        )

    async def _recent(
        self,
        fetch: Any,
        kind: MetricType,
        user_id: str,
        start: date,
        end: date,
    ) -> list[Any]:
        """Fetch one recent-history panel, falling back to an empty list.

        Any failure degrades the panel; only the summary is fatal.
        """
        try:
            return await fetch(user_id, start, end)
        except Exception as e:
            self.logger.warning(
                "Failed to retrieve recent data for dashboard",
                metric_type=kind.value,
                user_id=user_id,
                error=str(e),
                exc_info=True,
            )
            return []

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _require_user(self, user_id: str) -> None:
        if not user_id:
            self._reject("user ID is required")

    def _parse(
        self, model: type[DtoT], data: DtoT | Mapping[str, Any], kind: MetricType
    ) -> DtoT:
        """Coerce a payload into its DTO, mapping schema errors to BadRequest."""
        if isinstance(data, model):
            return data
        try:
            return model.model_validate(data)
        except ValidationError as e:
            self._record_error("validation")
            raise BadRequestError(
                f"invalid {kind.value} data",
                {"errors": e.errors(include_url=False, include_context=False)},
            ) from e

    def _check_score(self, kind: MetricType, score: int) -> None:
        if not 0 <= score <= 100:
            self._reject(f"{kind.value} score must be between 0 and 100")

    def _check_range(self, user_id: str, start: date, end: date) -> None:
        if not user_id:
            raise BadRequestError("user ID is required")
        self._check_dates(start, end)

    def _check_dates(self, start: date, end: date) -> None:
        if end < start:
            raise BadRequestError("end date must be after start date")
        if (end - start).days > MAX_RANGE_DAYS:
            raise BadRequestError(f"date range cannot exceed {MAX_RANGE_DAYS} days")

    def _reject(self, message: str) -> NoReturn:
        self._record_error("validation")
        self.logger.warning("Rejected metric", reason=message)
        raise BadRequestError(message)

    def _record_error(self, error_type: str) -> None:
        if self.metrics is not None:
            self.metrics.record_processing_error(error_type)

    def _stored(self, kind: MetricType, user_id: str, oura_id: str, day: date) -> None:
        if self.metrics is not None:
            self.metrics.record_processed(kind.value)
        self.logger.info(
            "Metric stored",
            metric_type=kind.value,
            user_id=user_id,
            oura_id=oura_id,
            day=day.isoformat(),
        )

    def _storage_failed(
        self, kind: MetricType, user_id: str, oura_id: str, error: Exception
    ) -> None:
        if self.metrics is not None:
            self.metrics.record_db_error()
            self.metrics.record_processing_error("storage")
        self.logger.error(
            "Failed to store metric",
            metric_type=kind.value,
            user_id=user_id,
            oura_id=oura_id,
            error=str(error),
        )

    def _query_failed(self, what: MetricType | str, user_id: str, error: Exception) -> None:
        if self.metrics is not None:
            self.metrics.record_db_error()
        self.logger.error(
            "Failed to query metrics",
            query=what.value if isinstance(what, MetricType) else what,
            user_id=user_id,
            error=str(error),
        )


def _row_to_dict(row: SleepMetric | ActivityMetric | ReadinessMetric) -> dict[str, Any]:
    return {column.key: getattr(row, column.key) for column in row.__table__.columns}
