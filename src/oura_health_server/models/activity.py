"""Daily activity metric model."""

from datetime import date

from sqlalchemy import Date, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from oura_health_server.models.base import Base, TimestampMixin, UserScopedMixin, generate_uuid


class ActivityMetric(Base, UserScopedMixin, TimestampMixin):
    """Oura daily activity score with calories, steps and intensity minutes."""

    __tablename__ = "activity_metrics"
    __table_args__ = ({"comment": "Oura daily activity scores"},)

    # Primary key
    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=generate_uuid,
    )

    oura_id: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    day: Mapped[date] = mapped_column(Date, nullable=False, index=True)

    score: Mapped[int] = mapped_column(Integer, nullable=False)
    active_calories: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    steps: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    medium_activity_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    high_activity_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<ActivityMetric(user_id={self.user_id}, day={self.day}, "
            f"score={self.score}, steps={self.steps})>"
        )
