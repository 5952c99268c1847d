from __future__ import annotations

from uuid import uuid4

import pytest

from promo_funnel.models.promo_code import PromoCode
from promo_funnel.services.promo_analytics.recorder import PromoCodeEventRecorder
from promo_funnel.services.promo_analytics.usage import PromoCodeUsageReconciler


@pytest.mark.asyncio
async def test_reconcile_restores_corrupted_counter(session_factory):
    async with session_factory() as session:
        promo = PromoCode(code="DRIFT", used_count=42)
        session.add(promo)
        await session.flush()
        recorder = PromoCodeEventRecorder(session)
        for _ in range(3):
            await recorder.record(promo.id, "redeem", order_id=uuid4())
        await recorder.record(promo.id, "apply")

        count = await PromoCodeUsageReconciler(session).reconcile(promo.id)
        await session.commit()
        promo_id = promo.id

    assert count == 3
    async with session_factory() as session:
        refreshed = await session.get(PromoCode, promo_id)
        assert refreshed.used_count == 3


@pytest.mark.asyncio
async def test_reconcile_is_a_full_overwrite_not_an_increment(session_factory):
    async with session_factory() as session:
        promo = PromoCode(code="STABLE", used_count=0)
        session.add(promo)
        await session.flush()
        await PromoCodeEventRecorder(session).record(promo.id, "redeem", order_id=uuid4())

        reconciler = PromoCodeUsageReconciler(session)
        await reconciler.reconcile(promo.id)
        await reconciler.reconcile(promo.id)
        await session.commit()
        promo_id = promo.id

    async with session_factory() as session:
        assert (await session.get(PromoCode, promo_id)).used_count == 1


@pytest.mark.asyncio
async def test_reconcile_all_rewrites_every_code(session_factory):
    async with session_factory() as session:
        used = PromoCode(code="USED", used_count=9)
        unused = PromoCode(code="UNUSED", used_count=4)
        session.add_all([used, unused])
        await session.flush()
        recorder = PromoCodeEventRecorder(session)
        await recorder.record(used.id, "redeem", order_id=uuid4())
        await recorder.record(used.id, "redeem", order_id=uuid4())

        touched = await PromoCodeUsageReconciler(session).reconcile_all()
        await session.commit()
        used_id, unused_id = used.id, unused.id

    assert touched == 2
    async with session_factory() as session:
        assert (await session.get(PromoCode, used_id)).used_count == 2
        assert (await session.get(PromoCode, unused_id)).used_count == 0


@pytest.mark.asyncio
async def test_set_usage_count_overwrites_value(session_factory):
    async with session_factory() as session:
        promo = PromoCode(code="MANUAL", used_count=1)
        session.add(promo)
        await session.flush()
        await PromoCodeUsageReconciler(session).set_usage_count(promo.id, 7)
        await session.commit()
        promo_id = promo.id

    async with session_factory() as session:
        assert (await session.get(PromoCode, promo_id)).used_count == 7
