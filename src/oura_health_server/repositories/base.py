"""Shared repository helpers."""

from typing import Any

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql.dml import Insert


def upsert_statement(
    session: AsyncSession,
    model: type[Any],
    values: dict[str, Any],
    index_elements: list[str],
    update_columns: list[str],
) -> Insert:
    """Build an INSERT ... ON CONFLICT DO UPDATE for the session's dialect.

    PostgreSQL in production, SQLite in tests; both share the same
    on_conflict_do_update API.

    Args:
        session: Session whose bind decides the dialect
        model: Mapped class to insert into
        values: Column values for the new row
        index_elements: Columns of the unique constraint to conflict on
        update_columns: Columns overwritten when the row already exists

    Returns:
        Executable insert statement
    """
    dialect = session.get_bind().dialect.name
    insert = sqlite.insert if dialect == "sqlite" else postgresql.insert

    stmt = insert(model).values(**values)
    return stmt.on_conflict_do_update(
        index_elements=index_elements,
        set_={column: stmt.excluded[column] for column in update_columns},
    )
