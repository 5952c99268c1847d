"""Recompute promo code usage counters from the redeem event log."""

from __future__ import annotations

from typing import Iterable
from uuid import UUID

from loguru import logger
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from promo_funnel.models.promo_analytics import PromoCodeEvent, PromoCodeEventType
from promo_funnel.models.promo_code import PromoCode


class PromoCodeUsageReconciler:
    """Overwrite ``PromoCode.used_count`` with the true redeem count.

    Counters are always recomputed in full, never incremented, so reruns
    heal drift instead of compounding it.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def count_redemptions(self, promo_code_id: UUID) -> int:
        stmt = select(func.count(PromoCodeEvent.id)).where(
            PromoCodeEvent.promo_code_id == promo_code_id,
            PromoCodeEvent.event_type == PromoCodeEventType.REDEEM,
        )
        result = await self._session.execute(stmt)
        return int(result.scalar_one() or 0)

    async def set_usage_count(self, promo_code_id: UUID, count: int) -> None:
        await self._session.execute(
            update(PromoCode)
            .where(PromoCode.id == promo_code_id)
            .values(used_count=count)
            .execution_options(synchronize_session=False)
        )

    async def reconcile(self, promo_code_id: UUID) -> int:
        count = await self.count_redemptions(promo_code_id)
        await self.set_usage_count(promo_code_id, count)
        return count

    async def reconcile_many(self, promo_code_ids: Iterable[UUID]) -> int:
        updated = 0
        for promo_code_id in sorted(set(promo_code_ids), key=str):
            await self.reconcile(promo_code_id)
            updated += 1
        return updated

    async def reconcile_all(self) -> int:
        """Recompute every code's counter in one statement; returns rows touched."""

        redeem_count = (
            select(func.count(PromoCodeEvent.id))
            .where(
                PromoCodeEvent.promo_code_id == PromoCode.id,
                PromoCodeEvent.event_type == PromoCodeEventType.REDEEM,
            )
            .correlate(PromoCode)
            .scalar_subquery()
        )
        result = await self._session.execute(
            update(PromoCode)
            .values(used_count=redeem_count)
            .execution_options(synchronize_session=False)
        )
        touched = result.rowcount or 0
        logger.debug("Promo code usage counters recomputed", rows=touched)
        return touched


__all__ = ["PromoCodeUsageReconciler"]
