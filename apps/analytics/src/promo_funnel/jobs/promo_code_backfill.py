"""Job entrypoint for the promo code analytics backfill."""

from __future__ import annotations

from typing import Any, Awaitable, Callable, Dict

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from promo_funnel.core.settings import settings
from promo_funnel.services.promo_analytics.backfill import PromoCodeAnalyticsBackfillJob

SessionFactory = Callable[[], AsyncSession] | Callable[[], Awaitable[AsyncSession]]


# meta: job: promo-analytics-backfill


def build_backfill_job(
    session_factory: SessionFactory,
    *,
    usage_scope: str | None = None,
) -> PromoCodeAnalyticsBackfillJob:
    scope = usage_scope or settings.promo_backfill_usage_scope
    return PromoCodeAnalyticsBackfillJob(
        session_factory,
        progress_interval=settings.promo_backfill_progress_interval,
        commit_batch_size=settings.promo_backfill_commit_batch_size,
        refresh_all_usage_counts=scope == "all",
    )


async def run_promo_code_backfill(
    *,
    session_factory: SessionFactory | None = None,
    job: PromoCodeAnalyticsBackfillJob | None = None,
) -> Dict[str, Any]:
    """Replay historical promo orders and rebuild the performance cache."""

    local_job = job
    if local_job is None:
        if session_factory is None:
            from promo_funnel.db.session import async_session

            session_factory = async_session
        local_job = build_backfill_job(session_factory)

    summary = (await local_job.run_once()).as_dict()
    logger.bind(summary=summary).info("Promo code analytics backfill job finished")
    return summary


__all__ = ["build_backfill_job", "run_promo_code_backfill"]
