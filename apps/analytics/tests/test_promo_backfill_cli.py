from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from decimal import Decimal
from uuid import uuid4

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from promo_funnel.db.base import Base
from promo_funnel.models.order import Order
from promo_funnel.models.promo_code import PromoCode
from promo_funnel.services.promo_analytics.backfill import PromoCodeAnalyticsBackfillJob
from promo_funnel.tasks.promo_code_backfill import cli, parse_args, run_promo_code_backfill_sync


def _database_url(tmp_path) -> str:
    return f"sqlite+aiosqlite:///{tmp_path / 'promo_funnel.db'}"


async def _prepare(url: str, *, analytics_tables: bool = True) -> None:
    engine = create_async_engine(url)
    try:
        async with engine.begin() as conn:
            if analytics_tables:
                await conn.run_sync(Base.metadata.create_all)
            else:
                await conn.run_sync(
                    lambda sync_conn: Base.metadata.create_all(
                        sync_conn, tables=[PromoCode.__table__, Order.__table__]
                    )
                )
        factory = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)
        async with factory() as session:
            session.add(PromoCode(code="LAUNCH", used_count=0))
            session.add(
                Order(
                    order_number="ORD-1",
                    customer_id=uuid4(),
                    promo_code="launch",
                    promo_discount=Decimal("5.00"),
                    subtotal=Decimal("50.00"),
                    total_amount=Decimal("45.00"),
                    created_at=datetime(2024, 1, 5, tzinfo=timezone.utc),
                )
            )
            await session.commit()
    finally:
        await engine.dispose()


async def _used_count(url: str) -> int:
    engine = create_async_engine(url)
    try:
        async with engine.connect() as conn:
            result = await conn.execute(select(PromoCode.used_count).where(PromoCode.code == "LAUNCH"))
            return result.scalar_one()
    finally:
        await engine.dispose()


def test_parse_args_defaults():
    args = parse_args([])
    assert args.database_url is None
    assert args.usage_scope is None

    args = parse_args(["--database-url", "sqlite+aiosqlite:///x.db", "--usage-scope", "touched"])
    assert args.database_url == "sqlite+aiosqlite:///x.db"
    assert args.usage_scope == "touched"


def test_cli_succeeds_and_is_safe_to_rerun(tmp_path, reset_promo_analytics_store):
    url = _database_url(tmp_path)
    asyncio.run(_prepare(url))

    assert cli(["--database-url", url]) == 0
    assert cli(["--database-url", url]) == 0

    assert asyncio.run(_used_count(url)) == 1
    snapshot = reset_promo_analytics_store.snapshot()
    assert snapshot.backfill == {"completed": 2}
    assert snapshot.last_backfill["processed"] == 0
    assert snapshot.last_backfill["skipped"] == 1


def test_cli_exits_non_zero_when_tables_are_missing(tmp_path, reset_promo_analytics_store):
    url = _database_url(tmp_path)
    asyncio.run(_prepare(url, analytics_tables=False))

    assert cli(["--database-url", url]) == 1
    assert reset_promo_analytics_store.snapshot().backfill == {"failed": 1}


def test_cli_exits_non_zero_when_database_cannot_be_opened(tmp_path, reset_promo_analytics_store):
    url = f"sqlite+aiosqlite:///{tmp_path / 'missing' / 'nested' / 'promo_funnel.db'}"

    assert cli(["--database-url", url]) == 1
    assert reset_promo_analytics_store.snapshot().backfill == {"failed": 1}


def test_run_promo_code_backfill_sync_returns_summary(tmp_path):
    url = _database_url(tmp_path)
    asyncio.run(_prepare(url))

    engine = create_async_engine(url, poolclass=NullPool)
    factory = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)
    summary = run_promo_code_backfill_sync(job=PromoCodeAnalyticsBackfillJob(factory))

    assert summary["processed"] == 1
    assert summary["cache_refreshed"] == 1
    assert summary["rollup"]["total_revenue"] == "45.00"
    assert asyncio.run(_used_count(url)) == 1
