"""OAuth token persistence."""

from datetime import UTC, datetime

from sqlalchemy import delete, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from oura_health_server.models.base import generate_uuid
from oura_health_server.models.oauth_token import OAuthToken
from oura_health_server.repositories.base import upsert_statement

_UPSERT_COLUMNS = [
    "access_token",
    "refresh_token",
    "token_type",
    "expires_at",
    "scope",
    "updated_at",
]


class OAuthTokenRepository:
    """Read and write provider tokens, one row per (user, provider)."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def save_token(self, token: OAuthToken) -> None:
        """Insert a token or overwrite the existing one for (user_id, provider)."""
        now = datetime.now(UTC)
        values = {
            "id": generate_uuid(),
            "user_id": token.user_id,
            "provider": token.provider,
            "access_token": token.access_token,
            "refresh_token": token.refresh_token,
            "token_type": token.token_type or "Bearer",
            "expires_at": token.expires_at,
            "scope": token.scope,
            "created_at": now,
            "updated_at": now,
        }
        stmt = upsert_statement(
            self.session,
            OAuthToken,
            values,
            index_elements=["user_id", "provider"],
            update_columns=_UPSERT_COLUMNS,
        )
        try:
            await self.session.execute(stmt)
            await self.session.commit()
        except SQLAlchemyError:
            await self.session.rollback()
            raise

    async def get_token(self, user_id: str, provider: str) -> OAuthToken | None:
        stmt = select(OAuthToken).where(
            OAuthToken.user_id == user_id,
            OAuthToken.provider == provider,
        )
        result = await self.session.execute(stmt.execution_options(populate_existing=True))
        return result.scalar_one_or_none()

    async def update_tokens(
        self,
        user_id: str,
        provider: str,
        access_token: str,
        refresh_token: str,
        expires_at: datetime,
    ) -> None:
        """Replace the token pair and expiry after a refresh."""
        try:
            await self.session.execute(
                update(OAuthToken)
                .where(OAuthToken.user_id == user_id, OAuthToken.provider == provider)
                .values(
                    access_token=access_token,
                    refresh_token=refresh_token,
                    expires_at=expires_at,
                    updated_at=datetime.now(UTC),
                )
            )
            await self.session.commit()
        except SQLAlchemyError:
            await self.session.rollback()
            raise

    async def delete_token(self, user_id: str, provider: str) -> None:
        try:
            await self.session.execute(
                delete(OAuthToken).where(
                    OAuthToken.user_id == user_id,
                    OAuthToken.provider == provider,
                )
            )
            await self.session.commit()
        except SQLAlchemyError:
            await self.session.rollback()
            raise
