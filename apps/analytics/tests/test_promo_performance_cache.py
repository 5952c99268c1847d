from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import func, select

from promo_funnel.models.promo_analytics import PromoCodePerformanceSnapshot
from promo_funnel.models.promo_code import PromoCode
from promo_funnel.services.promo_analytics.aggregator import PromoCodeAggregator
from promo_funnel.services.promo_analytics.cache import PromoCodePerformanceCacheStore
from promo_funnel.services.promo_analytics.recorder import PromoCodeEventRecorder


@pytest.mark.asyncio
async def test_upsert_inserts_then_replaces_every_field(session_factory):
    first_stamp = datetime(2024, 5, 1, 12, tzinfo=timezone.utc)
    second_stamp = datetime(2024, 5, 2, 12, tzinfo=timezone.utc)

    async with session_factory() as session:
        promo = PromoCode(code="CACHE")
        session.add(promo)
        await session.flush()

        recorder = PromoCodeEventRecorder(session)
        aggregator = PromoCodeAggregator(session)
        store = PromoCodePerformanceCacheStore(session)

        await recorder.record(promo.id, "view")
        await store.upsert(await aggregator.compute_snapshot(promo.id), refreshed_at=first_stamp)
        await session.commit()

        cached = await store.get(promo.id)
        assert cached.total_views == 1
        assert cached.total_redemptions == 0
        assert cached.last_updated.replace(tzinfo=None) == first_stamp.replace(tzinfo=None)

        await recorder.record(promo.id, "view")
        await recorder.record(
            promo.id, "redeem", order_id=uuid4(), cart_value="60", discount_amount="6", revenue="54"
        )
        await store.upsert(await aggregator.compute_snapshot(promo.id), refreshed_at=second_stamp)
        await session.commit()

        cached = await store.get(promo.id)
        assert cached.total_views == 2
        assert cached.total_redemptions == 1
        assert cached.total_revenue == Decimal("54.00")
        assert cached.total_discount_given == Decimal("6.00")
        assert cached.conversion_rate == Decimal("50.0000")
        assert cached.last_updated.replace(tzinfo=None) == second_stamp.replace(tzinfo=None)

        rows = await session.execute(select(func.count(PromoCodePerformanceSnapshot.id)))
        assert rows.scalar_one() == 1


@pytest.mark.asyncio
async def test_refresh_rebuilds_from_full_event_log(session_factory):
    async with session_factory() as session:
        promo = PromoCode(code="REBUILD")
        session.add(promo)
        await session.flush()
        recorder = PromoCodeEventRecorder(session)
        await recorder.record(promo.id, "apply")
        await recorder.record(promo.id, "abandon")

        store = PromoCodePerformanceCacheStore(session)
        performance = await store.refresh(promo.id)
        await session.commit()

        cached = await store.get(promo.id)

    assert performance.total_applications == 1
    assert cached.total_applications == 1
    assert cached.total_abandons == 1
    assert cached.redemption_rate == Decimal("0.0000")


@pytest.mark.asyncio
async def test_get_returns_none_for_uncached_code(session_factory):
    async with session_factory() as session:
        store = PromoCodePerformanceCacheStore(session)
        assert await store.get(uuid4()) is None


@pytest.mark.asyncio
async def test_stale_promo_code_ids_lists_missing_and_outdated_snapshots(session_factory):
    early = datetime(2024, 1, 1, 9, tzinfo=timezone.utc)
    later = datetime(2024, 1, 2, 9, tzinfo=timezone.utc)

    async with session_factory() as session:
        fresh, outdated, uncached, quiet = (PromoCode(code=code) for code in ("FRESH", "OUTDATED", "UNCACHED", "QUIET"))
        session.add_all([fresh, outdated, uncached, quiet])
        await session.flush()

        recorder = PromoCodeEventRecorder(session)
        aggregator = PromoCodeAggregator(session)
        store = PromoCodePerformanceCacheStore(session)
        for promo in (fresh, outdated, uncached):
            await recorder.record(promo.id, "view", occurred_at=early)
        await store.upsert(await aggregator.compute_snapshot(fresh.id), refreshed_at=later)
        await store.upsert(await aggregator.compute_snapshot(outdated.id), refreshed_at=early)
        await store.upsert(await aggregator.compute_snapshot(quiet.id), refreshed_at=early)
        await recorder.record(outdated.id, "view", occurred_at=later)
        await session.commit()

        stale = await store.stale_promo_code_ids()

    assert set(stale) == {outdated.id, uncached.id}
