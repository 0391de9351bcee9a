"""Initial schema: users, OAuth tokens and daily Oura metrics.

Revision ID: 7c1e2a9d4b30
Revises:
Create Date: 2026-10-17
"""

from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "7c1e2a9d4b30"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    ]


def _metric_columns() -> list[sa.Column]:
    """Columns shared by every daily metric table."""
    return [
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "user_id",
            sa.String(36),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("oura_id", sa.String(255), nullable=False, unique=True),
        sa.Column("day", sa.Date(), nullable=False),
        sa.Column("score", sa.Integer(), nullable=False),
    ]


def upgrade() -> None:
    """Create all tables."""
    op.create_table(
        "users",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("username", sa.String(255), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("password_hash", sa.Text(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("last_login", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_users_username", "users", ["username"], unique=True)
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "oauth_tokens",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "user_id",
            sa.String(36),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("provider", sa.String(50), nullable=False, server_default="oura"),
        sa.Column("access_token", sa.Text(), nullable=False),
        sa.Column("refresh_token", sa.Text(), nullable=False),
        sa.Column("token_type", sa.String(50), nullable=False, server_default="Bearer"),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("scope", sa.Text(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("user_id", "provider", name="uq_oauth_tokens_user_provider"),
    )
    op.create_index("ix_oauth_tokens_user_id", "oauth_tokens", ["user_id"])

    op.create_table(
        "sleep_metrics",
        *_metric_columns(),
        sa.Column("duration", sa.Integer(), nullable=False, server_default="0"),
        *_timestamps(),
        comment="Oura daily sleep scores",
    )

    op.create_table(
        "activity_metrics",
        *_metric_columns(),
        sa.Column("active_calories", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("steps", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("medium_activity_minutes", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("high_activity_minutes", sa.Integer(), nullable=False, server_default="0"),
        *_timestamps(),
        comment="Oura daily activity scores",
    )

    op.create_table(
        "readiness_metrics",
        *_metric_columns(),
        *_timestamps(),
        comment="Oura daily readiness scores",
    )

    for table in ("sleep_metrics", "activity_metrics", "readiness_metrics"):
        op.create_index(f"ix_{table}_user_id", table, ["user_id"])
        op.create_index(f"ix_{table}_day", table, ["day"])
        # Dashboard and history queries filter by user, then by day range
        op.create_index(f"ix_{table}_user_day", table, ["user_id", "day"])


def downgrade() -> None:
    """Drop all tables."""
    for table in ("readiness_metrics", "activity_metrics", "sleep_metrics"):
        op.drop_table(table)
    op.drop_table("oauth_tokens")
    op.drop_table("users")
