"""User persistence."""

from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import delete, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from oura_health_server.models.user import User


@dataclass(frozen=True)
class UserChanges:
    """Typed partial update for a user; None fields are left untouched."""

    email: str | None = None
    password_hash: str | None = None

    def as_values(self) -> dict[str, Any]:
        values: dict[str, Any] = {}
        if self.email is not None:
            values["email"] = self.email
        if self.password_hash is not None:
            values["password_hash"] = self.password_hash
        return values


class UserRepository:
    """Read and write users."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def create_user(self, username: str, email: str, password_hash: str) -> User:
        """Insert a new active user and return it."""
        user = User(username=username, email=email, password_hash=password_hash, is_active=True)
        self.session.add(user)
        try:
            await self.session.commit()
        except SQLAlchemyError:
            await self.session.rollback()
            raise
        await self.session.refresh(user)
        return user

    async def get_by_id(self, user_id: str) -> User | None:
        return await self.session.get(User, user_id)

    async def get_by_username(self, username: str) -> User | None:
        result = await self.session.execute(select(User).where(User.username == username))
        return result.scalar_one_or_none()

    async def get_by_email(self, email: str) -> User | None:
        result = await self.session.execute(select(User).where(User.email == email))
        return result.scalar_one_or_none()

    async def update_last_login(self, user_id: str) -> None:
        """Stamp the user's last_login with the current time."""
        now = datetime.now(UTC)
        try:
            await self.session.execute(
                update(User).where(User.id == user_id).values(last_login=now, updated_at=now)
            )
            await self.session.commit()
        except SQLAlchemyError:
            await self.session.rollback()
            raise

    async def update_user(self, user_id: str, changes: UserChanges) -> User | None:
        """Apply a partial update and return the updated user.

        Returns:
            The refreshed user, or None if it does not exist
        """
        values = changes.as_values()
        if values:
            values["updated_at"] = datetime.now(UTC)
            try:
                await self.session.execute(
                    update(User).where(User.id == user_id).values(**values)
                )
                await self.session.commit()
            except SQLAlchemyError:
                await self.session.rollback()
                raise

        user = await self.get_by_id(user_id)
        if user is not None:
            await self.session.refresh(user)
        return user

    async def delete_user(self, user_id: str) -> bool:
        """Delete a user.

        Returns:
            True if a row was deleted
        """
        try:
            result = await self.session.execute(delete(User).where(User.id == user_id))
            await self.session.commit()
        except SQLAlchemyError:
            await self.session.rollback()
            raise
        return result.rowcount > 0
