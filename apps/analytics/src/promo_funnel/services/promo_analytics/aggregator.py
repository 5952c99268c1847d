"""Derive performance metrics for a promo code from its event log."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Mapping
from uuid import UUID

from sqlalchemy import and_, case, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from promo_funnel.core.money import percentage, to_count, to_money
from promo_funnel.models.promo_analytics import (
    PromoCodeEvent,
    PromoCodeEventType,
    PromoCodeValidationResult,
)

from .windows import window_conditions


@dataclass(slots=True, frozen=True)
class PromoCodePerformance:
    """Aggregate funnel metrics for one promo code."""

    promo_code_id: UUID
    total_views: int
    total_validations: int
    successful_validations: int
    failed_validations: int
    total_applications: int
    total_redemptions: int
    total_abandons: int
    total_revenue: Decimal
    total_discount_given: Decimal
    avg_order_value: Decimal
    unique_customers: int
    conversion_rate: Decimal
    validation_success_rate: Decimal
    redemption_rate: Decimal

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


def build_performance(promo_code_id: UUID, row: Mapping[str, Any]) -> PromoCodePerformance:
    """Turn a raw aggregate row into a snapshot with guarded rates."""

    total_views = to_count(row.get("total_views"))
    total_validations = to_count(row.get("total_validations"))
    successful_validations = to_count(row.get("successful_validations"))
    total_applications = to_count(row.get("total_applications"))
    total_redemptions = to_count(row.get("total_redemptions"))

    return PromoCodePerformance(
        promo_code_id=promo_code_id,
        total_views=total_views,
        total_validations=total_validations,
        successful_validations=successful_validations,
        failed_validations=to_count(row.get("failed_validations")),
        total_applications=total_applications,
        total_redemptions=total_redemptions,
        total_abandons=to_count(row.get("total_abandons")),
        total_revenue=to_money(row.get("total_revenue")),
        total_discount_given=to_money(row.get("total_discount_given")),
        avg_order_value=to_money(row.get("avg_order_value")),
        unique_customers=to_count(row.get("unique_customers")),
        conversion_rate=percentage(total_redemptions, total_views),
        validation_success_rate=percentage(successful_validations, total_validations),
        redemption_rate=percentage(total_redemptions, total_applications),
    )


def _count_where(*conditions):
    return func.count(case((and_(*conditions), 1)))


class PromoCodeAggregator:
    """Scan a code's events and compute its performance snapshot."""

    # meta: service: promo-aggregator

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def compute_snapshot(
        self,
        promo_code_id: UUID,
        *,
        date_from: date | datetime | None = None,
        date_to: date | datetime | None = None,
    ) -> PromoCodePerformance:
        """Compute metrics over the full log, or over a reporting window when bounds are given."""

        event_type = PromoCodeEvent.event_type
        is_redeem = event_type == PromoCodeEventType.REDEEM
        is_validate = event_type == PromoCodeEventType.VALIDATE
        stmt = select(
            _count_where(event_type == PromoCodeEventType.VIEW).label("total_views"),
            _count_where(is_validate).label("total_validations"),
            _count_where(
                is_validate,
                PromoCodeEvent.validation_result == PromoCodeValidationResult.SUCCESS,
            ).label("successful_validations"),
            _count_where(
                is_validate,
                PromoCodeEvent.validation_result == PromoCodeValidationResult.FAILED,
            ).label("failed_validations"),
            _count_where(event_type == PromoCodeEventType.APPLY).label("total_applications"),
            _count_where(is_redeem).label("total_redemptions"),
            _count_where(event_type == PromoCodeEventType.ABANDON).label("total_abandons"),
            func.coalesce(func.sum(case((is_redeem, PromoCodeEvent.revenue), else_=0)), 0).label("total_revenue"),
            func.coalesce(
                func.sum(case((is_redeem, PromoCodeEvent.discount_amount), else_=0)), 0
            ).label("total_discount_given"),
            func.coalesce(func.avg(case((is_redeem, PromoCodeEvent.cart_value))), 0).label("avg_order_value"),
            func.count(func.distinct(case((is_redeem, PromoCodeEvent.customer_id)))).label("unique_customers"),
        ).where(
            PromoCodeEvent.promo_code_id == promo_code_id,
            *window_conditions(PromoCodeEvent.created_at, date_from, date_to),
        )

        result = await self._session.execute(stmt)
        row = result.mappings().one()
        return build_performance(promo_code_id, row)


__all__ = ["PromoCodeAggregator", "PromoCodePerformance", "build_performance"]
