"""Tests for the credit ledger"""

import asyncio

import pytest
from sqlalchemy import func, select

from verdict.db.models import CreditTransaction, CreditTransactionType
from verdict.db.repositories import DuplicateTransaction
from verdict.errors import InsufficientCreditsError, InvalidAmountError, ProfileNotFoundError
from verdict.services.cache import CacheKey
from verdict.services.credits import CreditLedger


@pytest.fixture
def ledger(test_db, cache):
    """Create a ledger instance"""
    return CreditLedger(test_db, cache)


class TestDeductCredits:
    async def test_deduct_decrements_and_records_transaction(self, ledger, make_profile, test_db):
        await make_profile("alice", credits=3)

        balance = await ledger.deduct_credits("alice", 2, "Verdict request (standard)", reference_id="req-1")

        assert balance == 1
        assert await ledger.get_balance("alice") == 1

        history = await ledger.get_transaction_history("alice")
        assert len(history) == 1
        entry = history[0]
        assert entry["transaction_type"] == "request_debit"
        assert entry["delta"] == -2
        assert entry["balance_after"] == 1
        assert entry["reason"] == "Verdict request (standard)"
        assert entry["reference_id"] == "req-1"

    async def test_insufficient_balance_is_typed_and_leaves_balance(self, ledger, make_profile):
        await make_profile("bob", credits=1)

        with pytest.raises(InsufficientCreditsError) as exc_info:
            await ledger.deduct_credits("bob", 2, "Verdict request (standard)")

        assert exc_info.value.code == "INSUFFICIENT_CREDITS"
        assert exc_info.value.status_code == 402
        assert exc_info.value.details == {"balance": 1, "required": 2}
        assert await ledger.get_balance("bob") == 1
        assert await ledger.get_transaction_history("bob") == []

    async def test_missing_profile_is_not_found(self, ledger):
        with pytest.raises(ProfileNotFoundError):
            await ledger.deduct_credits("ghost", 1, "Verdict request (basic)")

    @pytest.mark.parametrize("amount", [0, -1, 1.5])
    async def test_rejects_non_positive_amounts(self, ledger, make_profile, amount):
        await make_profile("carol", credits=5)

        with pytest.raises(InvalidAmountError):
            await ledger.deduct_credits("carol", amount, "bad")

        assert await ledger.get_balance("carol") == 5

    async def test_exact_balance_can_be_spent(self, ledger, make_profile):
        await make_profile("dave", credits=3)

        assert await ledger.deduct_credits("dave", 3, "Verdict request (premium)") == 0
        with pytest.raises(InsufficientCreditsError):
            await ledger.deduct_credits("dave", 1, "Verdict request (basic)")


class TestRefundAndGrant:
    async def test_refund_restores_balance(self, ledger, make_profile):
        await make_profile("erin", credits=1)
        await ledger.deduct_credits("erin", 1, "Verdict request (basic)")

        balance = await ledger.refund_credits("erin", 1, "Request creation failed", reference_id="req-9")

        assert balance == 1
        history = await ledger.get_transaction_history("erin")
        refund = [h for h in history if h["transaction_type"] == "refund"]
        assert len(refund) == 1
        assert refund[0]["delta"] == 1
        assert refund[0]["reason"] == "Request creation failed"

    async def test_grant_uses_given_transaction_type(self, ledger, make_profile, test_db):
        await make_profile("frank", credits=0)

        await ledger.grant_credits(
            "frank", 10, "Credit purchase (popular)",
            transaction_type=CreditTransactionType.PURCHASE, reference_id="cs_123",
        )

        assert await ledger.get_balance("frank") == 10
        result = await test_db.execute(
            select(func.count(CreditTransaction.id))
            .where(CreditTransaction.user_id == "frank")
            .where(CreditTransaction.transaction_type == CreditTransactionType.PURCHASE)
        )
        assert result.scalar() == 1

    async def test_grant_to_missing_profile(self, ledger):
        with pytest.raises(ProfileNotFoundError):
            await ledger.grant_credits("ghost", 1, "Judgment completion reward")

    @pytest.mark.parametrize(
        "transaction_type,reference_id",
        [
            (CreditTransactionType.PURCHASE, "cs_test_1"),
            (CreditTransactionType.JUDGE_REWARD, "reward:1"),
        ],
    )
    async def test_duplicate_reference_is_rejected_and_rolled_back(
        self, ledger, make_profile, transaction_type, reference_id
    ):
        await make_profile("hana", credits=0)
        await ledger.grant_credits("hana", 5, "first", transaction_type=transaction_type, reference_id=reference_id)

        with pytest.raises(DuplicateTransaction):
            await ledger.grant_credits(
                "hana", 5, "second", transaction_type=transaction_type, reference_id=reference_id
            )

        assert await ledger.get_balance("hana") == 5
        assert await ledger.has_transaction("hana", transaction_type, reference_id)

    async def test_same_reference_for_other_types_is_allowed(self, ledger, make_profile):
        await make_profile("ivan", credits=0)

        await ledger.grant_credits("ivan", 1, "goodwill", reference_id="ticket-7")
        await ledger.grant_credits("ivan", 1, "goodwill again", reference_id="ticket-7")

        assert await ledger.get_balance("ivan") == 2

    async def test_mutations_invalidate_cached_profile(self, ledger, make_profile, cache):
        await make_profile("gina", credits=2)
        cache.set(CacheKey.profile("gina"), {"credits": 2})

        await ledger.deduct_credits("gina", 1, "Verdict request (basic)")

        assert cache.get(CacheKey.profile("gina")) is None


class TestConcurrentDebits:
    async def test_concurrent_debits_never_overspend(self, session_factory, make_profile):
        await make_profile("hank", credits=3)

        async def attempt() -> bool:
            async with session_factory() as session:
                try:
                    await CreditLedger(session).deduct_credits("hank", 1, "Verdict request (basic)")
                    return True
                except InsufficientCreditsError:
                    return False

        results = await asyncio.gather(*(attempt() for _ in range(6)))

        assert sum(results) == 3
        async with session_factory() as session:
            ledger = CreditLedger(session)
            assert await ledger.get_balance("hank") == 0
            history = await ledger.get_transaction_history("hank")
            assert len(history) == 3
            assert sorted(h["balance_after"] for h in history) == [0, 1, 2]

    async def test_same_sized_debits_bounded_by_initial_balance(self, session_factory, make_profile):
        await make_profile("iris", credits=7)

        async def attempt() -> bool:
            async with session_factory() as session:
                try:
                    await CreditLedger(session).deduct_credits("iris", 2, "Verdict request (standard)")
                    return True
                except InsufficientCreditsError:
                    return False

        results = await asyncio.gather(*(attempt() for _ in range(5)))

        assert sum(results) == 7 // 2
        async with session_factory() as session:
            assert await CreditLedger(session).get_balance("iris") == 1
