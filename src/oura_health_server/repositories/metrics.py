"""Daily metric persistence and dashboard aggregation."""

from dataclasses import dataclass
from datetime import UTC, date, datetime, timedelta
from typing import Any, TypeVar

from sqlalchemy import func, select, union
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from oura_health_server.models.activity import ActivityMetric
from oura_health_server.models.base import generate_uuid
from oura_health_server.models.readiness import ReadinessMetric
from oura_health_server.models.sleep import SleepMetric
from oura_health_server.repositories.base import upsert_statement

MetricT = TypeVar("MetricT", SleepMetric, ActivityMetric, ReadinessMetric)

# Set on insert only; a re-ingested oura_id keeps its owner and day
_INSERT_ONLY_FIELDS = ["user_id", "day"]

_SLEEP_FIELDS = ["score", "duration"]
_ACTIVITY_FIELDS = [
    "score",
    "active_calories",
    "steps",
    "medium_activity_minutes",
    "high_activity_minutes",
]
_READINESS_FIELDS = ["score"]


@dataclass(frozen=True)
class DashboardSummary:
    """Aggregates over a dashboard window, computed in SQL."""

    total_days: int = 0
    avg_sleep_score: float = 0.0
    avg_activity_score: float = 0.0
    avg_readiness_score: float = 0.0
    total_steps: int = 0
    avg_sleep_duration_hours: float = 0.0


class MetricsRepository:
    """Upsert and query sleep, activity and readiness metrics."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def save_sleep_metric(self, metric: SleepMetric) -> None:
        await self._upsert(SleepMetric, metric, _SLEEP_FIELDS)

    async def save_activity_metric(self, metric: ActivityMetric) -> None:
        await self._upsert(ActivityMetric, metric, _ACTIVITY_FIELDS)

    async def save_readiness_metric(self, metric: ReadinessMetric) -> None:
        await self._upsert(ReadinessMetric, metric, _READINESS_FIELDS)

    async def get_sleep_metrics(
        self, user_id: str | None, start: date, end: date
    ) -> list[SleepMetric]:
        return await self._get_range(SleepMetric, user_id, start, end)

    async def get_activity_metrics(
        self, user_id: str | None, start: date, end: date
    ) -> list[ActivityMetric]:
        return await self._get_range(ActivityMetric, user_id, start, end)

    async def get_readiness_metrics(
        self, user_id: str | None, start: date, end: date
    ) -> list[ReadinessMetric]:
        return await self._get_range(ReadinessMetric, user_id, start, end)

    async def get_dashboard_summary(self, user_id: str, days: int) -> DashboardSummary:
        """Aggregate a user's metrics over the last ``days`` days.

        Args:
            user_id: Owner of the metrics
            days: Window length ending today

        Returns:
            Summary with zeroes where no data exists
        """
        since = date.today() - timedelta(days=days)

        sleep_row = (
            await self.session.execute(
                select(func.avg(SleepMetric.score), func.avg(SleepMetric.duration)).where(
                    SleepMetric.user_id == user_id, SleepMetric.day >= since
                )
            )
        ).one()
        activity_row = (
            await self.session.execute(
                select(func.avg(ActivityMetric.score), func.sum(ActivityMetric.steps)).where(
                    ActivityMetric.user_id == user_id, ActivityMetric.day >= since
                )
            )
        ).one()
        readiness_avg = await self.session.scalar(
            select(func.avg(ReadinessMetric.score)).where(
                ReadinessMetric.user_id == user_id, ReadinessMetric.day >= since
            )
        )

        # Distinct days with any metric
        days_with_data = union(
            select(SleepMetric.day).where(SleepMetric.user_id == user_id, SleepMetric.day >= since),
            select(ActivityMetric.day).where(
                ActivityMetric.user_id == user_id, ActivityMetric.day >= since
            ),
            select(ReadinessMetric.day).where(
                ReadinessMetric.user_id == user_id, ReadinessMetric.day >= since
            ),
        ).subquery()
        total_days = await self.session.scalar(select(func.count()).select_from(days_with_data))

        avg_sleep_score, avg_duration = sleep_row
        avg_activity_score, total_steps = activity_row

        return DashboardSummary(
            total_days=int(total_days or 0),
            avg_sleep_score=float(avg_sleep_score or 0),
            avg_activity_score=float(avg_activity_score or 0),
            avg_readiness_score=float(readiness_avg or 0),
            total_steps=int(total_steps or 0),
            avg_sleep_duration_hours=float(avg_duration or 0) / 3600,
        )

    async def _upsert(self, model: type[MetricT], metric: MetricT, fields: list[str]) -> None:
        """Insert a metric or overwrite the measurements of the row with the same oura_id."""
        now = datetime.now(UTC)
        values: dict[str, Any] = {
            field: getattr(metric, field) for field in [*_INSERT_ONLY_FIELDS, *fields]
        }
        values.update(
            id=generate_uuid(),
            oura_id=metric.oura_id,
            created_at=now,
            updated_at=now,
        )
        stmt = upsert_statement(
            self.session,
            model,
            values,
            index_elements=["oura_id"],
            update_columns=[*fields, "updated_at"],
        )
        try:
            await self.session.execute(stmt)
            await self.session.commit()
        except SQLAlchemyError:
            await self.session.rollback()
            raise

    async def _get_range(
        self, model: type[MetricT], user_id: str | None, start: date, end: date
    ) -> list[MetricT]:
        """Fetch metrics with start <= day <= end, most recent first."""
        stmt = select(model).where(model.day.between(start, end)).order_by(model.day.desc())
        if user_id is not None:
            stmt = stmt.where(model.user_id == user_id)

        # Rows may have been overwritten by a Core upsert since they were loaded
        result = await self.session.execute(stmt.execution_options(populate_existing=True))
        return list(result.scalars().all())
