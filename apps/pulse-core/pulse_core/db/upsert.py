"""Dialect-aware ``INSERT … ON CONFLICT DO UPDATE`` for natural-key upserts."""

from typing import Any

from sqlalchemy import and_
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

NATURAL_KEY = ("external_id", "platform")


async def upsert(
    session: AsyncSession,
    model: type,
    values: dict[str, Any],
    update_fields: list[str],
    index_elements: tuple[str, ...] = NATURAL_KEY,
    guard_fields: tuple[str, ...] = (),
) -> str | None:
    """Insert ``values`` or update ``update_fields`` on key conflict. Returns the row id.

    The id of an existing row is preserved, so re-running an ingest keeps
    foreign keys stable. With ``guard_fields`` the conflicting row is only
    updated when it already holds the same values for those columns; otherwise
    nothing is written and None is returned.
    """
    insert = pg_insert if session.get_bind().dialect.name == "postgresql" else sqlite_insert
    stmt = insert(model).values(**values)
    where = None
    if guard_fields:
        where = and_(*(getattr(model, field) == stmt.excluded[field] for field in guard_fields))
    stmt = stmt.on_conflict_do_update(
        index_elements=list(index_elements),
        set_={field: stmt.excluded[field] for field in update_fields},
        where=where,
    ).returning(model.id)
    result = await session.execute(stmt)
    return result.scalar_one_or_none()
