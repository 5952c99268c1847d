"""CLI helpers for the promo code analytics backfill."""

from __future__ import annotations

import argparse
import asyncio
from typing import Any, Sequence

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from promo_funnel.core.errors import AnalyticsTablesMissingError, PromoAnalyticsError
from promo_funnel.core.logging import configure_logging
from promo_funnel.core.settings import settings
from promo_funnel.jobs.promo_code_backfill import build_backfill_job, run_promo_code_backfill
from promo_funnel.services.promo_analytics.backfill import PromoCodeAnalyticsBackfillJob


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Replay historical promo code orders into the analytics event log."
    )
    parser.add_argument(
        "--database-url",
        default=None,
        help="Override DATABASE_URL for this run.",
    )
    parser.add_argument(
        "--usage-scope",
        choices=("all", "touched"),
        default=None,
        help="Recompute used_count for every promo code or only codes touched by this run.",
    )
    return parser.parse_args(argv)


async def _run(args: argparse.Namespace) -> dict[str, Any]:
    if args.database_url:
        from promo_funnel.db.session import create_engine

        engine = create_engine(args.database_url)
        factory = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)
        try:
            job = build_backfill_job(factory, usage_scope=args.usage_scope)
            return await run_promo_code_backfill(job=job)
        finally:
            await engine.dispose()

    from promo_funnel.db.session import async_session

    job = build_backfill_job(async_session, usage_scope=args.usage_scope)
    return await run_promo_code_backfill(job=job)


def run_promo_code_backfill_sync(
    *,
    job: PromoCodeAnalyticsBackfillJob | None = None,
) -> dict[str, Any]:
    return asyncio.run(run_promo_code_backfill(job=job))


def cli(argv: Sequence[str] | None = None) -> int:
    """Run the backfill; returns 0 on success (including empty input), 1 on fatal errors."""

    args = parse_args(argv)
    try:
        summary = asyncio.run(_run(args))
    except AnalyticsTablesMissingError as exc:
        logger.error(
            "Promo analytics tables are missing",
            missing_tables=exc.missing_tables,
            remediation=exc.remediation,
        )
        return 1
    except PromoAnalyticsError as exc:
        logger.opt(exception=exc).error("Promo code analytics backfill aborted", error=str(exc))
        return 1

    logger.success(
        "Promo code analytics backfill succeeded",
        processed=summary["processed"],
        skipped=summary["skipped"],
        errors=summary["errors"],
        cache_refreshed=summary["cache_refreshed"],
    )
    return 0


def main() -> int:
    configure_logging(
        service_name=settings.service_name,
        environment=settings.environment,
        version=settings.service_version,
        level=settings.log_level,
    )
    return cli()


__all__ = ["cli", "main", "parse_args", "run_promo_code_backfill_sync"]
