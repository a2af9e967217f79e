"""Tests for judge earnings accrual and aggregation"""

import uuid
from datetime import timedelta

import pytest

from verdict.db.models import PayoutStatus, utcnow
from verdict.errors import PayoutBelowMinimumError, StorageError
from verdict.services import pricing
from verdict.services.cache import CacheKey
from verdict.services.earnings import (
    EarningsService,
    InMemoryEarningsAggregator,
    SqlEarningsAggregator,
    build_summary,
    summarize_earnings,
)
from verdict.services.pricing import VerdictTier


@pytest.fixture
def earnings_service(test_db, cache):
    return EarningsService(test_db, cache)


async def accrue(service, judge_id: str, target_counts: list[int]) -> None:
    for count in target_counts:
        await service.record_earning(uuid.uuid4(), judge_id, count)
    await service.db.commit()


class TestRecordEarning:
    @pytest.mark.parametrize(
        "target,tier,cents",
        [(3, "basic", 50), (5, "standard", 55), (7, "premium", 60), (4, "basic", 50)],
    )
    async def test_amount_comes_from_tier_table(self, earnings_service, make_profile, target, tier, cents):
        await make_profile("judge")

        earning = await earnings_service.record_earning(uuid.uuid4(), "judge", target)

        assert earning.amount_cents == cents
        assert earning.tier == tier
        assert earning.payout_status == PayoutStatus.PENDING
        assert earning.available_at - earning.created_at == timedelta(days=7)

    async def test_duplicate_earning_for_same_verdict(self, earnings_service, make_profile, test_db):
        await make_profile("judge")
        response_id = uuid.uuid4()
        await earnings_service.record_earning(response_id, "judge", 3)
        await test_db.commit()

        with pytest.raises(StorageError):
            await earnings_service.record_earning(response_id, "judge", 3)
        await test_db.rollback()

    async def test_amount_is_frozen_after_repricing(self, earnings_service, make_profile, monkeypatch):
        await make_profile("judge")
        await accrue(earnings_service, "judge", [3])

        monkeypatch.setitem(
            pricing.VERDICT_TIERS, "basic", VerdictTier("basic", 3, 1, 99, "repriced")
        )

        summary = await earnings_service.get_summary("judge")
        assert summary.pending == 0.50


class TestSummary:
    async def test_summary_in_dollars(self, earnings_service, make_profile):
        await make_profile("judge")
        await accrue(earnings_service, "judge", [3, 5, 7])

        summary = await earnings_service.get_summary("judge")

        assert summary.total_earned == 1.65
        assert summary.pending == 1.65
        assert summary.available_for_payout == 0
        assert summary.paid == 0

    async def test_sql_and_in_memory_aggregators_agree(self, earnings_service, make_profile, test_db):
        await make_profile("judge")
        await accrue(earnings_service, "judge", [3, 3, 5, 7, 7])
        await earnings_service.release_matured_earnings(now=utcnow() + timedelta(days=8))
        await accrue(earnings_service, "judge", [5])

        sql_totals = await SqlEarningsAggregator(test_db).totals_by_status("judge")
        memory_totals = await InMemoryEarningsAggregator(test_db).totals_by_status("judge")

        assert build_summary(sql_totals) == build_summary(memory_totals)
        assert build_summary(sql_totals).available_for_payout == 2.75
        assert build_summary(sql_totals).pending == 0.55

    async def test_judge_without_earnings(self, earnings_service, make_profile):
        await make_profile("new-judge")

        summary = await earnings_service.get_summary("new-judge")

        assert summary.total_earned == 0
        assert summary.pending == 0

    async def test_summary_is_cached_until_release(self, earnings_service, make_profile, cache):
        await make_profile("judge")
        await accrue(earnings_service, "judge", [3])

        await earnings_service.get_summary("judge")
        assert cache.get(CacheKey.earnings("judge")) is not None

        await earnings_service.release_matured_earnings(now=utcnow() + timedelta(days=8))

        assert cache.get(CacheKey.earnings("judge")) is None
        summary = await earnings_service.get_summary("judge")
        assert summary.available_for_payout == 0.50
        assert summary.pending == 0


def test_summarize_earnings_is_pure():
    rows = [
        (PayoutStatus.PENDING, 50),
        (PayoutStatus.AVAILABLE, 55),
        (PayoutStatus.AVAILABLE, 60),
        (PayoutStatus.PAID, 50),
    ]

    totals = summarize_earnings(rows)

    assert totals == {
        PayoutStatus.PENDING: 50,
        PayoutStatus.AVAILABLE: 115,
        PayoutStatus.PAID: 50,
    }
    summary = build_summary(totals)
    assert summary.total_earned == 2.15
    assert summary.available_for_payout == 1.15


class TestReleaseAndPayout:
    async def test_release_respects_maturation_window(self, earnings_service, make_profile):
        await make_profile("judge")
        await accrue(earnings_service, "judge", [3, 5])

        assert await earnings_service.release_matured_earnings(now=utcnow() + timedelta(days=6)) == 0
        assert await earnings_service.release_matured_earnings(now=utcnow() + timedelta(days=8)) == 2
        assert await earnings_service.release_matured_earnings(now=utcnow() + timedelta(days=9)) == 0

    async def test_payout_below_minimum_is_rejected(self, earnings_service, make_profile):
        await make_profile("judge")
        await accrue(earnings_service, "judge", [7])
        await earnings_service.release_matured_earnings(now=utcnow() + timedelta(days=8))

        with pytest.raises(PayoutBelowMinimumError):
            await earnings_service.mark_paid("judge")

    async def test_payout_moves_available_to_paid(self, earnings_service, make_profile):
        await make_profile("judge")
        await accrue(earnings_service, "judge", [7] * 17)
        await earnings_service.release_matured_earnings(now=utcnow() + timedelta(days=8))
        await accrue(earnings_service, "judge", [3])

        payout = await earnings_service.mark_paid("judge")

        assert payout.earnings_paid == 17
        assert payout.amount_cents == 1020
        summary = await earnings_service.get_summary("judge")
        assert summary.paid == 10.20
        assert summary.available_for_payout == 0
        assert summary.pending == 0.50
