"""Verify the promo analytics tables exist and report how many events are stored.

Example::
    python tooling/scripts/check_promo_analytics_tables.py
"""

# meta: script: promo-analytics-table-check

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path

from loguru import logger


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Check promo analytics tables")
    parser.add_argument(
        "--database-url",
        default=None,
        help="Override DATABASE_URL for this check.",
    )
    return parser.parse_args()


async def _check(database_url: str | None) -> bool:
    repo_root = Path(__file__).resolve().parents[2]
    analytics_src = repo_root / "apps" / "analytics" / "src"
    if str(analytics_src) not in sys.path:
        sys.path.insert(0, str(analytics_src))

    from sqlalchemy import func, select  # type: ignore import-position
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker  # type: ignore import-position

    from promo_funnel.core.settings import settings  # type: ignore import-position
    from promo_funnel.db.session import create_engine  # type: ignore import-position
    from promo_funnel.models.promo_analytics import PromoCodeEvent  # type: ignore import-position
    from promo_funnel.services.promo_analytics.schema import (  # type: ignore import-position
        missing_analytics_tables,
    )

    engine = create_engine(database_url or settings.database_url)
    factory = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)
    try:
        async with factory() as session:
            missing = await missing_analytics_tables(session)
            if missing:
                logger.error(
                    "Promo analytics tables do not exist",
                    missing_tables=missing,
                    remediation="Create promo_code_events and promo_code_performance_cache first.",
                )
                return False

            result = await session.execute(select(func.count(PromoCodeEvent.id)))
            event_count = int(result.scalar_one() or 0)
    finally:
        await engine.dispose()

    logger.info("Promo analytics tables exist", events_tracked=event_count)
    if event_count == 0:
        logger.info(
            "No analytics data yet; events appear as codes are viewed, validated, "
            "applied and redeemed, or after running the backfill"
        )
    return True


def main() -> int:
    args = parse_args()
    ok = asyncio.run(_check(args.database_url))
    return 0 if ok else 1


if __name__ == "__main__":
    sys.exit(main())
