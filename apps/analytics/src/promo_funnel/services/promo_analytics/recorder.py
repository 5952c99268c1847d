"""Append-only recorder for promo code funnel events."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from uuid import UUID

from loguru import logger
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from promo_funnel.core.errors import DuplicateRedeemEventError, InvalidPromoCodeEventError
from promo_funnel.core.money import to_money
from promo_funnel.models.promo_analytics import (
    PromoCodeEvent,
    PromoCodeEventType,
    PromoCodeValidationResult,
)
from promo_funnel.observability.promo_analytics import get_promo_analytics_store

_REDEEM_UNIQUE_MARKERS = ("uq_promo_code_events_redeem_order", "promo_code_events.order_id")


@dataclass(slots=True, frozen=True)
class RecordedPromoCodeEvent:
    """Acknowledgement returned once an event row has been flushed."""

    id: UUID
    promo_code_id: UUID
    event_type: PromoCodeEventType
    created_at: datetime


def coerce_event_type(value: PromoCodeEventType | str) -> PromoCodeEventType:
    try:
        return PromoCodeEventType(value)
    except ValueError as exc:
        raise InvalidPromoCodeEventError(f"Unknown promo code event type {value!r}", value=value) from exc


def coerce_validation_result(
    value: PromoCodeValidationResult | str | None,
) -> PromoCodeValidationResult | None:
    if value is None:
        return None
    try:
        return PromoCodeValidationResult(value)
    except ValueError as exc:
        raise InvalidPromoCodeEventError(f"Unknown validation result {value!r}", value=value) from exc


class PromoCodeEventRecorder:
    """Persist immutable funnel events without cross-event validation."""

    # meta: service: promo-event-log

    def __init__(self, session: AsyncSession) -> None:
        self._session = session
        self._observability = get_promo_analytics_store()

    async def record(
        self,
        promo_code_id: UUID,
        event_type: PromoCodeEventType | str,
        *,
        validation_result: PromoCodeValidationResult | str | None = None,
        customer_id: UUID | None = None,
        order_id: UUID | None = None,
        cart_value: Decimal | float | str | None = None,
        discount_amount: Decimal | float | str | None = 0,
        revenue: Decimal | float | str | None = 0,
        failure_reason: str | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
        referrer_url: str | None = None,
        occurred_at: datetime | None = None,
    ) -> RecordedPromoCodeEvent:
        """Append one event row and flush it.

        A second redeem event for the same order violates the partial unique
        index and surfaces as :class:`DuplicateRedeemEventError`; the session
        must then be rolled back by the caller.
        """

        resolved_type = coerce_event_type(event_type)
        created_at = occurred_at or datetime.now(timezone.utc)

        event = PromoCodeEvent(
            promo_code_id=promo_code_id,
            event_type=resolved_type,
            validation_result=coerce_validation_result(validation_result),
            failure_reason=failure_reason,
            customer_id=customer_id,
            order_id=order_id,
            cart_value=to_money(cart_value) if cart_value is not None else None,
            discount_amount=to_money(discount_amount),
            revenue=to_money(revenue),
            ip_address=ip_address,
            user_agent=user_agent,
            referrer_url=referrer_url,
            created_at=created_at,
        )
        self._session.add(event)
        try:
            await self._session.flush()
        except IntegrityError as exc:
            if resolved_type is PromoCodeEventType.REDEEM and _is_redeem_conflict(exc):
                self._observability.record_duplicate_redeem()
                logger.error(
                    "Rejected duplicate redeem event",
                    promo_code_id=str(promo_code_id),
                    order_id=str(order_id),
                )
                raise DuplicateRedeemEventError(order_id, promo_code_id=promo_code_id) from exc
            raise

        self._observability.record_event(resolved_type.value)
        return RecordedPromoCodeEvent(
            id=event.id,
            promo_code_id=promo_code_id,
            event_type=resolved_type,
            created_at=created_at,
        )

    async def fetch_redeemed_order_ids(self) -> set[UUID]:
        """Return order ids that already carry a redeem event."""

        stmt = (
            select(PromoCodeEvent.order_id)
            .where(
                PromoCodeEvent.event_type == PromoCodeEventType.REDEEM,
                PromoCodeEvent.order_id.is_not(None),
            )
            .distinct()
        )
        result = await self._session.execute(stmt)
        return set(result.scalars().all())


def _is_redeem_conflict(exc: IntegrityError) -> bool:
    message = str(exc.orig) if exc.orig is not None else str(exc)
    return any(marker in message for marker in _REDEEM_UNIQUE_MARKERS)


__all__ = [
    "PromoCodeEventRecorder",
    "RecordedPromoCodeEvent",
    "coerce_event_type",
    "coerce_validation_result",
]
