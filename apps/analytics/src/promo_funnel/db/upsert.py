"""Dialect-aware ``INSERT ... ON CONFLICT`` construction."""

from __future__ import annotations

from typing import Any

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from promo_funnel.core.errors import UnsupportedDialectError

_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


def insert_for(session: AsyncSession, table: Any) -> Any:
    """Return an insert supporting ``on_conflict_do_update`` for the session's dialect."""

    dialect_name = session.get_bind().dialect.name
    factory = _INSERTS.get(dialect_name)
    if factory is None:
        raise UnsupportedDialectError(dialect_name)
    return factory(table)


__all__ = ["insert_for"]
