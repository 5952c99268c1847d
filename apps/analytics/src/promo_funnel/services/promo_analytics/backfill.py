"""Replay historical promo code orders into the funnel event log.

The backfill is safe to rerun at any point: orders that already carry a
``redeem`` event (the guard set) are skipped, snapshots are rebuilt from the
full log, and usage counters are overwritten rather than incremented.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Awaitable, Callable, Dict, List
from uuid import UUID

from loguru import logger
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from promo_funnel.core.errors import BackfillIOError, PromoAnalyticsError, UnsupportedDialectError
from promo_funnel.models.order import Order
from promo_funnel.models.promo_analytics import PromoCodeEventType
from promo_funnel.observability.promo_analytics import get_promo_analytics_store

from .cache import PromoCodePerformanceCacheStore
from .recorder import PromoCodeEventRecorder
from .reporting import PromoCodeReportingService
from .schema import ensure_analytics_tables
from .tracking import resolve_promo_code
from .usage import PromoCodeUsageReconciler

SessionFactory = Callable[[], AsyncSession] | Callable[[], Awaitable[AsyncSession]]


@dataclass(slots=True, frozen=True)
class HistoricalOrder:
    """Order columns the backfill replays."""

    order_id: UUID
    customer_id: UUID | None
    promo_code: str
    promo_discount: Decimal
    subtotal: Decimal
    total_amount: Decimal
    created_at: datetime


@dataclass(slots=True, frozen=True)
class BackfillOrderError:
    order_id: UUID
    promo_code: str
    reason: str


@dataclass
class PromoCodeBackfillSummary:
    """Outcome of one backfill run."""

    orders_found: int = 0
    processed: int = 0
    skipped: int = 0
    errors: int = 0
    cache_refreshed: int = 0
    cache_errors: int = 0
    stale_snapshots: int = 0
    usage_counts_updated: int = 0
    promo_code_ids: List[UUID] = field(default_factory=list)
    error_details: List[BackfillOrderError] = field(default_factory=list)
    rollup: Dict[str, Any] = field(default_factory=dict)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "orders_found": self.orders_found,
            "processed": self.processed,
            "skipped": self.skipped,
            "errors": self.errors,
            "cache_refreshed": self.cache_refreshed,
            "cache_errors": self.cache_errors,
            "stale_snapshots": self.stale_snapshots,
            "usage_counts_updated": self.usage_counts_updated,
            "promo_code_ids": [str(value) for value in self.promo_code_ids],
            "error_details": [
                {"order_id": str(item.order_id), "promo_code": item.promo_code, "reason": item.reason}
                for item in self.error_details
            ],
            "rollup": {
                key: str(value) if isinstance(value, Decimal) else value
                for key, value in self.rollup.items()
            },
        }


class PromoCodeAnalyticsBackfillJob:
    """Rebuild redeem events, snapshots and usage counters from historical orders."""

    # meta: job: promo-analytics-backfill

    def __init__(
        self,
        session_factory: SessionFactory,
        *,
        progress_interval: int = 50,
        commit_batch_size: int = 50,
        refresh_all_usage_counts: bool = True,
    ) -> None:
        self._session_factory = session_factory
        self._progress_interval = max(1, progress_interval)
        self._commit_batch_size = max(1, commit_batch_size)
        self._refresh_all_usage_counts = refresh_all_usage_counts
        self._observability = get_promo_analytics_store()

    async def run_once(self) -> PromoCodeBackfillSummary:
        session = await self._ensure_session()
        async with session as db:
            try:
                summary = await self._run(db)
            except PromoAnalyticsError:
                await db.rollback()
                self._observability.record_backfill_run(success=False)
                raise

        self._observability.record_backfill_run(success=True, summary=summary.as_dict())
        return summary

    async def _run(self, db: AsyncSession) -> PromoCodeBackfillSummary:
        logger.info("Starting promo code analytics backfill")
        try:
            await ensure_analytics_tables(db)
        except SQLAlchemyError as exc:
            raise BackfillIOError("Failed to inspect the analytics tables", stage="precondition") from exc

        summary = PromoCodeBackfillSummary()
        recorder = PromoCodeEventRecorder(db)

        orders = await self._load_candidate_orders(db)
        summary.orders_found = len(orders)
        if not orders:
            logger.info("No historical orders with promo codes found")

        try:
            guard_set = await recorder.fetch_redeemed_order_ids()
        except SQLAlchemyError as exc:
            raise BackfillIOError("Failed to load already processed orders", stage="load_guard_set") from exc
        logger.info(
            "Loaded backfill candidates",
            orders_found=summary.orders_found,
            already_processed=len(guard_set),
        )

        touched: set[UUID] = set()
        resolved_codes: dict[str, UUID | None] = {}
        pending_commit = 0

        for order in orders:
            if order.order_id in guard_set:
                summary.skipped += 1
                continue

            promo_code_id = await self._resolve_code(db, order, resolved_codes)
            if promo_code_id is None:
                summary.errors += 1
                summary.error_details.append(
                    BackfillOrderError(
                        order_id=order.order_id,
                        promo_code=order.promo_code,
                        reason="promo code not found",
                    )
                )
                logger.warning(
                    "Promo code for historical order not found, skipping",
                    order_id=str(order.order_id),
                    promo_code=order.promo_code,
                )
                continue

            try:
                await recorder.record(
                    promo_code_id,
                    PromoCodeEventType.REDEEM,
                    customer_id=order.customer_id,
                    order_id=order.order_id,
                    cart_value=order.subtotal,
                    discount_amount=order.promo_discount,
                    revenue=order.total_amount,
                    occurred_at=order.created_at,
                )
            except SQLAlchemyError as exc:
                raise BackfillIOError(
                    f"Failed to write redeem event for order {order.order_id}",
                    stage="write_event",
                    order_id=order.order_id,
                ) from exc

            guard_set.add(order.order_id)
            touched.add(promo_code_id)
            summary.processed += 1
            pending_commit += 1

            if pending_commit >= self._commit_batch_size:
                await self._commit(db, stage="write_event")
                pending_commit = 0
            if summary.processed % self._progress_interval == 0:
                logger.info("Backfill progress", processed=summary.processed)

        await self._commit(db, stage="write_event")
        logger.info(
            "Historical order replay complete",
            processed=summary.processed,
            skipped=summary.skipped,
            errors=summary.errors,
        )

        summary.promo_code_ids = sorted(touched, key=str)
        stale = await self._load_stale_snapshots(db, touched)
        summary.stale_snapshots = len(stale)
        await self._refresh_snapshots(db, summary, sorted(touched | set(stale), key=str))
        summary.usage_counts_updated = await self._reconcile_usage_counts(db, summary.promo_code_ids)

        try:
            summary.rollup = await PromoCodeReportingService(db).fetch_redeem_rollup()
        except SQLAlchemyError as exc:
            raise BackfillIOError("Failed to compute redeem rollup", stage="rollup") from exc

        logger.bind(summary=summary.as_dict()).info("Promo code analytics backfill completed")
        return summary

    async def _load_candidate_orders(self, db: AsyncSession) -> list[HistoricalOrder]:
        stmt = (
            select(
                Order.id,
                Order.customer_id,
                Order.promo_code,
                Order.promo_discount,
                Order.subtotal,
                Order.total_amount,
                Order.created_at,
            )
            .where(
                Order.promo_code.is_not(None),
                Order.promo_code != "",
                Order.promo_discount > 0,
            )
            .order_by(Order.created_at.asc(), Order.id.asc())
        )
        try:
            result = await db.execute(stmt)
        except SQLAlchemyError as exc:
            raise BackfillIOError("Failed to load historical orders", stage="load_orders") from exc

        return [
            HistoricalOrder(
                order_id=row.id,
                customer_id=row.customer_id,
                promo_code=row.promo_code,
                promo_discount=row.promo_discount,
                subtotal=row.subtotal,
                total_amount=row.total_amount,
                created_at=row.created_at,
            )
            for row in result.all()
        ]

    async def _resolve_code(
        self,
        db: AsyncSession,
        order: HistoricalOrder,
        resolved_codes: dict[str, UUID | None],
    ) -> UUID | None:
        key = order.promo_code.strip().upper()
        if key not in resolved_codes:
            try:
                promo = await resolve_promo_code(db, key)
            except SQLAlchemyError as exc:
                raise BackfillIOError(
                    f"Failed to resolve promo code for order {order.order_id}",
                    stage="resolve_code",
                    order_id=order.order_id,
                ) from exc
            resolved_codes[key] = promo.id if promo is not None else None
        return resolved_codes[key]

    async def _load_stale_snapshots(self, db: AsyncSession, touched: set[UUID]) -> list[UUID]:
        # Snapshots left missing or outdated by an earlier aborted run or cache failure.
        try:
            stale = await PromoCodePerformanceCacheStore(db).stale_promo_code_ids()
        except SQLAlchemyError as exc:
            raise BackfillIOError("Failed to find stale performance snapshots", stage="stale_snapshots") from exc
        stale = [promo_code_id for promo_code_id in stale if promo_code_id not in touched]
        if stale:
            logger.info("Rebuilding stale performance snapshots", stale_snapshots=len(stale))
        return stale

    async def _refresh_snapshots(
        self,
        db: AsyncSession,
        summary: PromoCodeBackfillSummary,
        promo_code_ids: list[UUID],
    ) -> None:
        cache = PromoCodePerformanceCacheStore(db)
        for promo_code_id in promo_code_ids:
            try:
                await cache.refresh(promo_code_id)
                await db.commit()
            except (SQLAlchemyError, UnsupportedDialectError) as exc:
                await db.rollback()
                summary.cache_errors += 1
                self._observability.record_cache_refresh(success=False)
                logger.bind(promo_code_id=str(promo_code_id)).opt(exception=exc).error(
                    "Failed to refresh promo code performance cache"
                )
                continue
            summary.cache_refreshed += 1
            self._observability.record_cache_refresh(success=True)
        logger.info(
            "Performance cache refreshed",
            cache_refreshed=summary.cache_refreshed,
            cache_errors=summary.cache_errors,
        )

    async def _reconcile_usage_counts(self, db: AsyncSession, touched: list[UUID]) -> int:
        reconciler = PromoCodeUsageReconciler(db)
        try:
            if self._refresh_all_usage_counts:
                updated = await reconciler.reconcile_all()
            else:
                updated = await reconciler.reconcile_many(touched)
            await db.commit()
        except SQLAlchemyError as exc:
            raise BackfillIOError("Failed to recompute promo code usage counts", stage="usage_counts") from exc
        logger.info("Promo code usage counts recomputed", updated=updated)
        return updated

    async def _commit(self, db: AsyncSession, *, stage: str) -> None:
        try:
            await db.commit()
        except SQLAlchemyError as exc:
            raise BackfillIOError("Failed to commit backfilled events", stage=stage) from exc

    async def _ensure_session(self) -> AsyncSession:
        maybe_session = self._session_factory()
        if isinstance(maybe_session, AsyncSession):
            return maybe_session
        return await maybe_session


__all__ = [
    "BackfillOrderError",
    "HistoricalOrder",
    "PromoCodeAnalyticsBackfillJob",
    "PromoCodeBackfillSummary",
]
