"""Live funnel tracking used by checkout and storefront flows."""

from __future__ import annotations

from typing import Any
from uuid import UUID

from loguru import logger
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from promo_funnel.core.errors import (
    DuplicateRedeemEventError,
    InvalidPromoCodeEventError,
    PromoCodeNotFoundError,
    UnsupportedDialectError,
)
from promo_funnel.models.promo_analytics import PromoCodeEventType
from promo_funnel.models.promo_code import PromoCode
from promo_funnel.observability.promo_analytics import get_promo_analytics_store

from .cache import PromoCodePerformanceCacheStore
from .recorder import PromoCodeEventRecorder, RecordedPromoCodeEvent, coerce_event_type

PUBLIC_EVENT_TYPES = frozenset(
    {PromoCodeEventType.VIEW, PromoCodeEventType.APPLY, PromoCodeEventType.ABANDON}
)


async def resolve_promo_code(session: AsyncSession, code: str) -> PromoCode | None:
    """Case-insensitive exact match on the promo code string."""

    normalized = (code or "").strip()
    if not normalized:
        return None
    result = await session.execute(
        select(PromoCode).where(func.upper(PromoCode.code) == normalized.upper())
    )
    return result.scalars().first()


class PromoCodeTrackingService:
    """Record funnel events from live traffic and keep the code's snapshot fresh."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session
        self._recorder = PromoCodeEventRecorder(session)
        self._cache = PromoCodePerformanceCacheStore(session)
        self._observability = get_promo_analytics_store()

    async def resolve_code(self, code: str) -> PromoCode | None:
        return await resolve_promo_code(self._session, code)

    async def track_event(
        self,
        promo_code_id: UUID,
        event_type: PromoCodeEventType | str,
        **fields: Any,
    ) -> RecordedPromoCodeEvent | None:
        """Record an event and refresh the cache; tracking failures never break the caller.

        Returns ``None`` when the event could not be stored. Duplicate redeem
        events are a caller bug and are re-raised.
        """

        try:
            recorded = await self._recorder.record(promo_code_id, event_type, **fields)
        except (DuplicateRedeemEventError, InvalidPromoCodeEventError):
            raise
        except SQLAlchemyError as exc:
            logger.bind(promo_code_id=str(promo_code_id), event_type=str(event_type)).opt(
                exception=exc
            ).warning("Promo code event tracking failed")
            return None

        try:
            await self._cache.refresh(promo_code_id)
        except (SQLAlchemyError, UnsupportedDialectError) as exc:
            self._observability.record_cache_refresh(success=False)
            logger.bind(promo_code_id=str(promo_code_id)).opt(exception=exc).warning(
                "Promo code performance cache refresh failed"
            )
        else:
            self._observability.record_cache_refresh(success=True)
        return recorded

    async def track_public_event(
        self,
        code: str,
        event_type: PromoCodeEventType | str,
        *,
        customer_id: UUID | None = None,
        cart_value: Any = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
        referrer_url: str | None = None,
    ) -> RecordedPromoCodeEvent | None:
        """Track a storefront interaction; only view, apply and abandon are accepted."""

        resolved_type = coerce_event_type(event_type)
        if resolved_type not in PUBLIC_EVENT_TYPES:
            raise InvalidPromoCodeEventError(
                "Invalid event_type. Must be view, apply, or abandon", value=resolved_type.value
            )

        promo = await self.resolve_code(code)
        if promo is None:
            raise PromoCodeNotFoundError(code)

        return await self.track_event(
            promo.id,
            resolved_type,
            customer_id=customer_id,
            cart_value=cart_value,
            ip_address=ip_address,
            user_agent=user_agent,
            referrer_url=referrer_url,
        )


__all__ = ["PUBLIC_EVENT_TYPES", "PromoCodeTrackingService", "resolve_promo_code"]
