"""Precondition checks for the analytics tables."""

from __future__ import annotations

from sqlalchemy import inspect
from sqlalchemy.ext.asyncio import AsyncSession

from promo_funnel.core.errors import AnalyticsTablesMissingError
from promo_funnel.models.promo_analytics import PromoCodeEvent, PromoCodePerformanceSnapshot

ANALYTICS_TABLES = (
    PromoCodeEvent.__tablename__,
    PromoCodePerformanceSnapshot.__tablename__,
)


async def missing_analytics_tables(session: AsyncSession) -> list[str]:
    connection = await session.connection()
    existing = await connection.run_sync(lambda sync_conn: set(inspect(sync_conn).get_table_names()))
    return [table for table in ANALYTICS_TABLES if table not in existing]


async def ensure_analytics_tables(session: AsyncSession) -> None:
    missing = await missing_analytics_tables(session)
    if missing:
        raise AnalyticsTablesMissingError(missing)


__all__ = ["ANALYTICS_TABLES", "ensure_analytics_tables", "missing_analytics_tables"]
