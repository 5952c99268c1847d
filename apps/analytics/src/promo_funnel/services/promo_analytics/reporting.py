"""Read-side reporting over the promo code event log."""

from __future__ import annotations

from datetime import date, datetime
from typing import Any, Dict, List
from uuid import UUID

from sqlalchemy import case, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from promo_funnel.core.money import ZERO_MONEY, percentage, to_count, to_money
from promo_funnel.core.settings import settings
from promo_funnel.models.promo_analytics import PromoCodeEvent, PromoCodeEventType
from promo_funnel.models.promo_code import PromoCode, PromoCodeStatusEnum

from .aggregator import PromoCodeAggregator, PromoCodePerformance, build_performance
from .schema import missing_analytics_tables
from .windows import window_conditions

_IS_REDEEM = PromoCodeEvent.event_type == PromoCodeEventType.REDEEM


def _count_of(event_type: PromoCodeEventType):
    return func.count(case((PromoCodeEvent.event_type == event_type, 1)))


def _redeem_sum(column):
    return func.coalesce(func.sum(case((_IS_REDEEM, column), else_=0)), 0)


def _as_date(value: Any) -> date | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


class PromoCodeReportingService:
    """Aggregate views for admin reporting; empty results when tables are missing."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def _tables_ready(self) -> bool:
        return not await missing_analytics_tables(self._session)

    async def fetch_overview(self, *, top_limit: int | None = None) -> Dict[str, Any]:
        limit = top_limit if top_limit is not None else settings.promo_reporting_top_limit
        if not await self._tables_ready():
            return {
                "total_revenue": ZERO_MONEY,
                "total_discount_given": ZERO_MONEY,
                "total_redemptions": 0,
                "total_validations": 0,
                "total_views": 0,
                "avg_discount_per_order": ZERO_MONEY,
                "conversion_rate": percentage(0, 0),
                "top_performers": [],
            }

        stats_stmt = select(
            _redeem_sum(PromoCodeEvent.revenue).label("total_revenue"),
            _redeem_sum(PromoCodeEvent.discount_amount).label("total_discount_given"),
            _count_of(PromoCodeEventType.REDEEM).label("total_redemptions"),
            _count_of(PromoCodeEventType.VALIDATE).label("total_validations"),
            _count_of(PromoCodeEventType.VIEW).label("total_views"),
            func.coalesce(func.avg(case((_IS_REDEEM, PromoCodeEvent.discount_amount))), 0).label(
                "avg_discount_per_order"
            ),
        )
        stats = (await self._session.execute(stats_stmt)).mappings().one()

        redemptions = func.count(case((_IS_REDEEM, 1))).label("redemptions")
        revenue = _redeem_sum(PromoCodeEvent.revenue).label("revenue")
        top_stmt = (
            select(
                PromoCode.id,
                PromoCode.code,
                PromoCode.description,
                redemptions,
                revenue,
                _redeem_sum(PromoCodeEvent.discount_amount).label("discount_given"),
            )
            .outerjoin(PromoCodeEvent, PromoCodeEvent.promo_code_id == PromoCode.id)
            .where(PromoCode.status != PromoCodeStatusEnum.DELETED)
            .group_by(PromoCode.id, PromoCode.code, PromoCode.description)
            .order_by(redemptions.desc(), revenue.desc(), PromoCode.code.asc())
            .limit(max(1, limit))
        )
        top_rows = (await self._session.execute(top_stmt)).mappings().all()

        total_views = to_count(stats["total_views"])
        total_redemptions = to_count(stats["total_redemptions"])
        return {
            "total_revenue": to_money(stats["total_revenue"]),
            "total_discount_given": to_money(stats["total_discount_given"]),
            "total_redemptions": total_redemptions,
            "total_validations": to_count(stats["total_validations"]),
            "total_views": total_views,
            "avg_discount_per_order": to_money(stats["avg_discount_per_order"]),
            "conversion_rate": percentage(total_redemptions, total_views),
            "top_performers": [
                {
                    "id": row["id"],
                    "code": row["code"],
                    "description": row["description"],
                    "redemptions": to_count(row["redemptions"]),
                    "revenue": to_money(row["revenue"]),
                    "discount_given": to_money(row["discount_given"]),
                }
                for row in top_rows
            ],
        }

    async def fetch_code_metrics(
        self,
        promo_code_id: UUID,
        *,
        date_from: date | datetime | None = None,
        date_to: date | datetime | None = None,
    ) -> PromoCodePerformance:
        if not await self._tables_ready():
            return build_performance(promo_code_id, {})
        aggregator = PromoCodeAggregator(self._session)
        return await aggregator.compute_snapshot(promo_code_id, date_from=date_from, date_to=date_to)

    async def fetch_time_series(
        self,
        *,
        promo_code_id: UUID | None = None,
        date_from: date | datetime | None = None,
        date_to: date | datetime | None = None,
    ) -> List[Dict[str, Any]]:
        if not await self._tables_ready():
            return []

        conditions = window_conditions(PromoCodeEvent.created_at, date_from, date_to)
        if promo_code_id is not None:
            conditions.append(PromoCodeEvent.promo_code_id == promo_code_id)

        day = func.date(PromoCodeEvent.created_at).label("day")
        stmt = (
            select(
                day,
                _count_of(PromoCodeEventType.VIEW).label("views"),
                _count_of(PromoCodeEventType.VALIDATE).label("validations"),
                _count_of(PromoCodeEventType.APPLY).label("applications"),
                _count_of(PromoCodeEventType.REDEEM).label("redemptions"),
                _redeem_sum(PromoCodeEvent.revenue).label("revenue"),
                _redeem_sum(PromoCodeEvent.discount_amount).label("discount_given"),
            )
            .where(*conditions)
            .group_by(day)
            .order_by(day.asc())
        )
        rows = (await self._session.execute(stmt)).mappings().all()
        return [
            {
                "date": _as_date(row["day"]),
                "views": to_count(row["views"]),
                "validations": to_count(row["validations"]),
                "applications": to_count(row["applications"]),
                "redemptions": to_count(row["redemptions"]),
                "revenue": to_money(row["revenue"]),
                "discount_given": to_money(row["discount_given"]),
            }
            for row in rows
        ]

    async def fetch_redeem_rollup(self) -> Dict[str, Any]:
        """Totals across every redeem event, used for the backfill run summary."""

        stmt = select(
            func.count(PromoCodeEvent.id).label("total_events"),
            func.count(func.distinct(PromoCodeEvent.promo_code_id)).label("unique_codes"),
            func.count(func.distinct(PromoCodeEvent.customer_id)).label("unique_customers"),
            func.count(func.distinct(PromoCodeEvent.order_id)).label("total_redemptions"),
            func.coalesce(func.sum(PromoCodeEvent.discount_amount), 0).label("total_discount"),
            func.coalesce(func.sum(PromoCodeEvent.revenue), 0).label("total_revenue"),
        ).where(_IS_REDEEM)
        row = (await self._session.execute(stmt)).mappings().one()
        return {
            "total_events": to_count(row["total_events"]),
            "unique_codes": to_count(row["unique_codes"]),
            "unique_customers": to_count(row["unique_customers"]),
            "total_redemptions": to_count(row["total_redemptions"]),
            "total_discount": to_money(row["total_discount"]),
            "total_revenue": to_money(row["total_revenue"]),
        }


__all__ = ["PromoCodeReportingService"]
