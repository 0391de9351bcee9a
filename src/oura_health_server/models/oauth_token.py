"""OAuth token model for third-party provider connections."""

from datetime import UTC, datetime, timedelta

from sqlalchemy import DateTime, ForeignKey, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from oura_health_server.models.base import Base, TimestampMixin, ensure_utc, generate_uuid

OURA_PROVIDER = "oura"


class OAuthToken(Base, TimestampMixin):
    """Access/refresh token pair for one user and one provider.

    Attributes:
        user_id: FK to the owning user
        provider: Provider name (only "oura" today)
        access_token: Bearer token for provider API calls
        refresh_token: Token used to obtain a new access token
        token_type: Token type reported by the provider
        expires_at: When the access token stops working
        scope: Granted scope
    """

    __tablename__ = "oauth_tokens"
    __table_args__ = (
        UniqueConstraint("user_id", "provider", name="uq_oauth_tokens_user_provider"),
    )

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=generate_uuid,
    )
    user_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    provider: Mapped[str] = mapped_column(String(50), nullable=False, default=OURA_PROVIDER)
    access_token: Mapped[str] = mapped_column(Text, nullable=False)
    refresh_token: Mapped[str] = mapped_column(Text, nullable=False)
    token_type: Mapped[str] = mapped_column(String(50), nullable=False, default="Bearer")
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    scope: Mapped[str | None] = mapped_column(Text)

    def __repr__(self) -> str:
        """Return string representation."""
        return f"<OAuthToken(user_id={self.user_id}, provider={self.provider})>"

    def is_expired(self, margin: timedelta = timedelta(0)) -> bool:
        """Return True if the token expires within ``margin`` from now."""
        return datetime.now(UTC) + margin >= ensure_utc(self.expires_at)
