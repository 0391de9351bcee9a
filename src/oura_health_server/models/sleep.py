"""Daily sleep metric model."""

from datetime import date

from sqlalchemy import Date, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from oura_health_server.models.base import Base, TimestampMixin, UserScopedMixin, generate_uuid


class SleepMetric(Base, UserScopedMixin, TimestampMixin):
    """Oura daily sleep score.

    oura_id is the provider's record id; re-ingesting it overwrites the row.
    """

    __tablename__ = "sleep_metrics"
    __table_args__ = ({"comment": "Oura daily sleep scores"},)

    # Primary key
    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=generate_uuid,
    )

    oura_id: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)

    # The night's date, not a timestamp
    day: Mapped[date] = mapped_column(Date, nullable=False, index=True)

    score: Mapped[int] = mapped_column(Integer, nullable=False)
    duration: Mapped[int] = mapped_column(Integer, nullable=False, default=0)  # seconds

    def __repr__(self) -> str:
        """String representation."""
        return f"<SleepMetric(user_id={self.user_id}, day={self.day}, score={self.score})>"
