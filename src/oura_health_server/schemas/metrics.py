"""Pydantic schemas for metric ingestion and read APIs."""

from datetime import date
from enum import Enum
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class MetricType(str, Enum):
    """Kinds of daily metric handled by the services."""

    SLEEP = "sleep"
    ACTIVITY = "activity"
    READINESS = "readiness"


class _MetricData(BaseModel):
    """Fields shared by every daily metric.

    ``oura_id`` also accepts the provider's raw ``id`` key.
    """

    model_config = ConfigDict(populate_by_name=True)

    oura_id: str = Field(
        min_length=1,
        validation_alias=AliasChoices("oura_id", "id"),
        description="Provider record id (upsert key)",
    )
    day: date = Field(description="Calendar day the metric belongs to")
    score: int = Field(description="Score, 0-100")


class SleepData(_MetricData):
    """Daily sleep metric."""

    duration: int = Field(default=0, description="Total sleep duration in seconds")


class ActivityData(_MetricData):
    """Daily activity metric."""

    active_calories: int = Field(default=0, description="Active calories burned")
    steps: int = Field(default=0, description="Step count")
    medium_activity_minutes: int = Field(default=0, description="Minutes of medium activity")
    high_activity_minutes: int = Field(default=0, description="Minutes of high activity")


class ReadinessData(_MetricData):
    """Daily readiness metric."""


class DashboardSummaryData(BaseModel):
    """Aggregates over the dashboard window."""

    total_days: int = Field(description="Days with at least one metric")
    avg_sleep_score: float = Field(description="Mean sleep score")
    avg_activity_score: float = Field(description="Mean activity score")
    avg_readiness_score: float = Field(description="Mean readiness score")
    total_steps: int = Field(description="Sum of steps")
    avg_sleep_duration_hours: float = Field(description="Mean sleep duration in hours")


class DashboardData(BaseModel):
    """Dashboard: window summary plus the most recent week of raw metrics."""

    summary: DashboardSummaryData
    recent_sleep: list[SleepData] = Field(default_factory=list)
    recent_activity: list[ActivityData] = Field(default_factory=list)
    recent_readiness: list[ReadinessData] = Field(default_factory=list)


class IngestRequest(BaseModel):
    """Body of POST /api/v1/ingest."""

    type: str = Field(description="sleep, activity or readiness")
    user_id: str = Field(description="Owner of the metric")
    data: dict[str, Any] = Field(description="Metric payload for the given type")
