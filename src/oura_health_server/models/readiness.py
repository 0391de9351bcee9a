"""Daily readiness metric model."""

from datetime import date

from sqlalchemy import Date, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from oura_health_server.models.base import Base, TimestampMixin, UserScopedMixin, generate_uuid


class ReadinessMetric(Base, UserScopedMixin, TimestampMixin):
    """Oura daily readiness score."""

    __tablename__ = "readiness_metrics"
    __table_args__ = ({"comment": "Oura daily readiness scores"},)

    # Primary key
    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=generate_uuid,
    )

    oura_id: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    day: Mapped[date] = mapped_column(Date, nullable=False, index=True)

    score: Mapped[int] = mapped_column(Integer, nullable=False)

    def __repr__(self) -> str:
        """String representation."""
        return f"<ReadinessMetric(user_id={self.user_id}, day={self.day}, score={self.score})>"
