from __future__ import annotations

from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from promo_funnel.core.errors import (
    DuplicateRedeemEventError,
    InvalidPromoCodeEventError,
    PromoCodeNotFoundError,
)
from promo_funnel.models.promo_analytics import PromoCodeEvent, PromoCodeEventType
from promo_funnel.models.promo_code import PromoCode
from promo_funnel.services.promo_analytics.cache import PromoCodePerformanceCacheStore
from promo_funnel.services.promo_analytics.tracking import PromoCodeTrackingService, resolve_promo_code


async def _create_code(session, code: str = "WELCOME10") -> PromoCode:
    promo = PromoCode(code=code)
    session.add(promo)
    await session.commit()
    return promo


@pytest.mark.asyncio
async def test_track_event_refreshes_snapshot(session_factory, reset_promo_analytics_store):
    async with session_factory() as session:
        promo = await _create_code(session)
        service = PromoCodeTrackingService(session)

        await service.track_event(promo.id, "view")
        recorded = await service.track_event(
            promo.id,
            PromoCodeEventType.REDEEM,
            order_id=uuid4(),
            customer_id=uuid4(),
            cart_value="80",
            discount_amount="8",
            revenue="72",
        )
        await session.commit()

        snapshot = await PromoCodePerformanceCacheStore(session).get(promo.id)

    assert recorded is not None
    assert recorded.event_type is PromoCodeEventType.REDEEM
    assert snapshot.total_views == 1
    assert snapshot.total_redemptions == 1
    assert snapshot.total_revenue == Decimal("72.00")
    assert snapshot.conversion_rate == Decimal("100.0000")

    telemetry = reset_promo_analytics_store.snapshot()
    assert telemetry.events == {"view": 1, "redeem": 1}
    assert telemetry.cache == {"refreshed": 2}


@pytest.mark.asyncio
async def test_track_event_survives_cache_failure(session_factory, monkeypatch, reset_promo_analytics_store):
    async def broken_refresh(self, promo_code_id):
        raise OperationalError("UPSERT", {}, Exception("database is locked"))

    monkeypatch.setattr(PromoCodePerformanceCacheStore, "refresh", broken_refresh)

    async with session_factory() as session:
        promo = await _create_code(session)
        recorded = await PromoCodeTrackingService(session).track_event(promo.id, "apply", cart_value="30")
        await session.commit()

        total = await session.execute(select(func.count(PromoCodeEvent.id)))

    assert recorded is not None
    assert total.scalar_one() == 1
    assert reset_promo_analytics_store.snapshot().cache == {"failed": 1}


@pytest.mark.asyncio
async def test_track_event_reraises_duplicate_redeem(session_factory):
    order_id = uuid4()
    async with session_factory() as session:
        promo = await _create_code(session)
        service = PromoCodeTrackingService(session)
        await service.track_event(promo.id, "redeem", order_id=order_id, revenue="10")
        await session.commit()

        with pytest.raises(DuplicateRedeemEventError):
            await service.track_event(promo.id, "redeem", order_id=order_id, revenue="10")
        await session.rollback()


@pytest.mark.asyncio
async def test_public_event_resolves_code_case_insensitively(session_factory):
    async with session_factory() as session:
        promo = await _create_code(session, "SpringSale")
        service = PromoCodeTrackingService(session)

        recorded = await service.track_public_event(
            "  springsale ",
            "view",
            ip_address="203.0.113.7",
            user_agent="pytest",
            referrer_url="https://example.com/landing",
        )
        await session.commit()

        event = (await session.execute(select(PromoCodeEvent))).scalar_one()

    assert recorded.promo_code_id == promo.id
    assert event.ip_address == "203.0.113.7"
    assert event.referrer_url == "https://example.com/landing"


@pytest.mark.asyncio
@pytest.mark.parametrize("event_type", ["validate", "redeem"])
async def test_public_event_rejects_server_side_types(session_factory, event_type):
    async with session_factory() as session:
        await _create_code(session)
        with pytest.raises(InvalidPromoCodeEventError):
            await PromoCodeTrackingService(session).track_public_event("WELCOME10", event_type)


@pytest.mark.asyncio
async def test_public_event_unknown_code(session_factory):
    async with session_factory() as session:
        with pytest.raises(PromoCodeNotFoundError) as excinfo:
            await PromoCodeTrackingService(session).track_public_event("NOPE", "view")

    assert excinfo.value.code == "NOPE"


@pytest.mark.asyncio
async def test_resolve_promo_code_ignores_blank_input(session_factory):
    async with session_factory() as session:
        await _create_code(session)
        assert await resolve_promo_code(session, "") is None
        assert await resolve_promo_code(session, "   ") is None
        assert (await resolve_promo_code(session, "welcome10")).code == "WELCOME10"
