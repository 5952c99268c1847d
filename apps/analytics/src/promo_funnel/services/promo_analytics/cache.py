"""Persistent performance cache keyed by promo code."""

from __future__ import annotations

from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from promo_funnel.db.upsert import insert_for
from promo_funnel.models.promo_analytics import PromoCodeEvent, PromoCodePerformanceSnapshot

from .aggregator import PromoCodeAggregator, PromoCodePerformance

_SNAPSHOT_FIELDS = (
    "total_views",
    "total_validations",
    "successful_validations",
    "failed_validations",
    "total_applications",
    "total_redemptions",
    "total_abandons",
    "total_revenue",
    "total_discount_given",
    "avg_order_value",
    "unique_customers",
    "conversion_rate",
    "validation_success_rate",
    "redemption_rate",
)


class PromoCodePerformanceCacheStore:
    """Store the latest snapshot per code with a single atomic insert-or-replace."""

    # meta: cache-layer: persistent

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def upsert(
        self,
        performance: PromoCodePerformance,
        *,
        refreshed_at: datetime | None = None,
    ) -> None:
        """Replace every cached field for the code, inserting the row on first use."""

        stamped_at = refreshed_at or datetime.now(timezone.utc)
        values = {name: getattr(performance, name) for name in _SNAPSHOT_FIELDS}
        values["last_updated"] = stamped_at

        insert = insert_for(self._session, PromoCodePerformanceSnapshot)
        stmt = insert.values(promo_code_id=performance.promo_code_id, **values).on_conflict_do_update(
            index_elements=[PromoCodePerformanceSnapshot.promo_code_id],
            set_=values,
        )
        await self._session.execute(stmt)

    async def get(self, promo_code_id: UUID) -> PromoCodePerformanceSnapshot | None:
        result = await self._session.execute(
            select(PromoCodePerformanceSnapshot).where(
                PromoCodePerformanceSnapshot.promo_code_id == promo_code_id
            )
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def stale_promo_code_ids(self) -> list[UUID]:
        """Codes with events but no snapshot, or a snapshot older than their newest event."""

        snapshot = PromoCodePerformanceSnapshot
        latest_event = func.max(PromoCodeEvent.created_at)
        stmt = (
            select(PromoCodeEvent.promo_code_id)
            .outerjoin(snapshot, snapshot.promo_code_id == PromoCodeEvent.promo_code_id)
            .group_by(PromoCodeEvent.promo_code_id, snapshot.last_updated)
            .having(or_(snapshot.last_updated.is_(None), snapshot.last_updated < latest_event))
        )
        result = await self._session.execute(stmt)
        return sorted(set(result.scalars().all()), key=str)

    async def refresh(self, promo_code_id: UUID) -> PromoCodePerformance:
        """Recompute the code's metrics from the full event log and persist them."""

        performance = await PromoCodeAggregator(self._session).compute_snapshot(promo_code_id)
        await self.upsert(performance)
        return performance


__all__ = ["PromoCodePerformanceCacheStore"]
