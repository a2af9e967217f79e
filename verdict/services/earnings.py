"""Judge earnings accrual, maturation and aggregation"""

import logging
import uuid
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Protocol

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from verdict.config import settings
from verdict.db.models import JudgeEarning, PayoutStatus, utcnow
from verdict.db.repositories import DuplicateEarning, JudgeEarningRepository
from verdict.errors import PayoutBelowMinimumError, StorageError
from verdict.schemas.earnings import EarningsSummary
from verdict.services.cache import CacheKey, EntityCache
from verdict.services.pricing import cents_to_dollars, tier_for_target_count

logger = logging.getLogger(__name__)


class EarningsAggregator(Protocol):
    """Totals of a judge's earnings in cents, keyed by payout status"""

    async def totals_by_status(self, judge_id: str) -> dict[PayoutStatus, int]:
        ...


class SqlEarningsAggregator:
    """Grouped SUM in the database"""

    def __init__(self, db: AsyncSession):
        self.earnings = JudgeEarningRepository(db)

    async def totals_by_status(self, judge_id: str) -> dict[PayoutStatus, int]:
        return await self.earnings.sum_by_status(judge_id)


class InMemoryEarningsAggregator:
    """Loads the judge's rows and sums them in Python"""

    def __init__(self, db: AsyncSession, limit: int = 10000):
        self.earnings = JudgeEarningRepository(db)
        self.limit = limit

    async def totals_by_status(self, judge_id: str) -> dict[PayoutStatus, int]:
        rows = await self.earnings.list_for_judge(judge_id, limit=self.limit)
        return summarize_earnings((row.payout_status, row.amount_cents) for row in rows)


def summarize_earnings(rows: Iterable[tuple[PayoutStatus, int]]) -> dict[PayoutStatus, int]:
    totals = {status: 0 for status in PayoutStatus}
    for status, amount_cents in rows:
        totals[status] += amount_cents
    return totals


def build_summary(totals: dict[PayoutStatus, int]) -> EarningsSummary:
    pending = totals.get(PayoutStatus.PENDING, 0)
    available = totals.get(PayoutStatus.AVAILABLE, 0)
    paid = totals.get(PayoutStatus.PAID, 0)
    return EarningsSummary(
        total_earned=cents_to_dollars(pending + available + paid),
        pending=cents_to_dollars(pending),
        available_for_payout=cents_to_dollars(available),
        paid=cents_to_dollars(paid),
    )


@dataclass(frozen=True)
class Payout:
    judge_id: str
    earnings_paid: int
    amount_cents: int


class EarningsService:
    def __init__(
        self,
        db: AsyncSession,
        cache: EntityCache | None = None,
        aggregator: EarningsAggregator | None = None,
    ):
        self.db = db
        self.cache = cache
        self.aggregator = aggregator or SqlEarningsAggregator(db)
        self.earnings = JudgeEarningRepository(db)

    async def record_earning(
        self,
        verdict_response_id: uuid.UUID,
        judge_id: str,
        target_verdict_count: int,
    ) -> JudgeEarning:
        """Accrue the payout for one verdict response.

        The amount is read from the tier table now and stored on the row.
        Flushes only; the caller commits together with the verdict.
        """
        tier = tier_for_target_count(target_verdict_count)
        now = utcnow()
        earning = JudgeEarning(
            id=uuid.uuid4(),
            verdict_response_id=verdict_response_id,
            judge_id=judge_id,
            amount_cents=tier.judge_payout_cents,
            tier=tier.name,
            currency="USD",
            payout_status=PayoutStatus.PENDING,
            created_at=now,
            available_at=now + timedelta(days=settings.judge_payout_maturation_days),
        )

        try:
            await self.earnings.insert(earning)
        except DuplicateEarning as e:
            logger.error(f"Earning already recorded for verdict response {verdict_response_id}")
            raise StorageError("Earning already recorded for this verdict") from e

        logger.info(
            f"Recorded earning of {tier.judge_payout_cents} cents ({tier.name}) "
            f"for judge {judge_id}, available at {earning.available_at.isoformat()}"
        )
        return earning

    async def get_summary(self, judge_id: str) -> EarningsSummary:
        key = CacheKey.earnings(judge_id)
        if self.cache is not None:
            cached = self.cache.get(key)
            if cached is not None:
                return cached

        try:
            totals = await self.aggregator.totals_by_status(judge_id)
        except SQLAlchemyError as e:
            logger.error(f"Failed to aggregate earnings for judge {judge_id}: {e}", exc_info=True)
            raise StorageError("Failed to load earnings") from e

        summary = build_summary(totals)
        if self.cache is not None:
            self.cache.set(key, summary)
        return summary

    async def list_earnings(self, judge_id: str, limit: int = 50) -> list[JudgeEarning]:
        return await self.earnings.list_for_judge(judge_id, limit=limit)

    async def release_matured_earnings(self, now: datetime | None = None) -> int:
        """Promote pending earnings whose maturation window has passed"""
        now = now or utcnow()
        try:
            judge_ids = await self.earnings.release_matured(now)
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Failed to release matured earnings: {e}", exc_info=True)
            raise StorageError("Failed to release earnings") from e

        for judge_id in set(judge_ids):
            self._invalidate(judge_id)
        if judge_ids:
            logger.info(f"Released {len(judge_ids)} matured earnings for {len(set(judge_ids))} judges")
        return len(judge_ids)

    async def mark_paid(self, judge_id: str) -> Payout:
        """Pay out everything available for a judge in one batch"""
        totals = await self.aggregator.totals_by_status(judge_id)
        available = totals.get(PayoutStatus.AVAILABLE, 0)
        minimum = settings.minimum_payout_cents
        if available < minimum:
            raise PayoutBelowMinimumError(
                f"Available balance {cents_to_dollars(available):.2f} is below the "
                f"minimum payout of {cents_to_dollars(minimum):.2f}",
                available_cents=available,
                minimum_cents=minimum,
            )

        try:
            amounts = await self.earnings.mark_available_paid(judge_id, utcnow())
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Failed to mark earnings paid for judge {judge_id}: {e}", exc_info=True)
            raise StorageError("Failed to record payout") from e

        self._invalidate(judge_id)
        payout = Payout(judge_id=judge_id, earnings_paid=len(amounts), amount_cents=sum(amounts))
        logger.info(f"Paid out {payout.amount_cents} cents across {payout.earnings_paid} earnings to judge {judge_id}")
        return payout

    def _invalidate(self, judge_id: str) -> None:
        if self.cache is not None:
            self.cache.invalidate_earnings(judge_id)
