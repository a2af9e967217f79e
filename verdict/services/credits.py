"""Credit ledger service: every change to a profile's credit balance"""

import logging
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from verdict.db.models import CreditTransactionType
from verdict.db.repositories import DuplicateTransaction, ProfileRepository
from verdict.errors import (
    InsufficientCreditsError,
    InvalidAmountError,
    ProfileNotFoundError,
    StorageError,
    VerdictError,
)
from verdict.services.cache import EntityCache

logger = logging.getLogger(__name__)

REFUND_REASON_REQUEST_FAILED = "Request creation failed"


class CreditLedger:
    """Atomic debit, refund and grant of credits.

    Each operation is one conditional UPDATE plus one ``credit_transactions``
    row, committed together. Callers that need a compensating refund call
    ``refund_credits`` exactly once; nothing here retries.
    """

    def __init__(self, db: AsyncSession, cache: EntityCache | None = None):
        self.db = db
        self.cache = cache
        self.profiles = ProfileRepository(db)

    async def deduct_credits(
        self,
        user_id: str,
        amount: int,
        reason: str,
        transaction_type: CreditTransactionType = CreditTransactionType.REQUEST_DEBIT,
        reference_id: str | None = None,
    ) -> int:
        """Debit ``amount`` credits if the balance allows it and return the new balance

        Raises:
            InsufficientCreditsError: balance is lower than ``amount``
            ProfileNotFoundError: no profile for ``user_id``
        """
        self._validate_amount(amount)

        try:
            new_balance = await self.profiles.debit_if_sufficient(user_id, amount)
            if new_balance is None:
                current = await self.profiles.get_credits(user_id)
                await self.db.rollback()
                if current is None:
                    raise ProfileNotFoundError()
                logger.info(
                    f"Debit rejected for user {user_id}: have {current}, need {amount}"
                )
                raise InsufficientCreditsError(
                    f"Insufficient credits. Have: {current}, need: {amount}",
                    balance=current,
                    required=amount,
                )

            await self.profiles.record_transaction(
                user_id=user_id,
                transaction_type=transaction_type,
                delta=-amount,
                balance_after=new_balance,
                reason=reason,
                reference_id=reference_id,
            )
            await self.db.commit()
        except VerdictError:
            raise
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Failed to debit credits for user {user_id}: {e}", exc_info=True)
            raise StorageError("Failed to debit credits") from e

        self._invalidate(user_id)
        logger.info(f"Debited {amount} credits from user {user_id} ({reason}), balance {new_balance}")
        return new_balance

    async def refund_credits(
        self,
        user_id: str,
        amount: int,
        reason: str,
        reference_id: str | None = None,
    ) -> int:
        """Return credits after a failed downstream step"""
        new_balance = await self._add(
            user_id, amount, reason, CreditTransactionType.REFUND, reference_id
        )
        logger.warning(f"Refunded {amount} credits to user {user_id} ({reason}), balance {new_balance}")
        return new_balance

    async def grant_credits(
        self,
        user_id: str,
        amount: int,
        reason: str,
        transaction_type: CreditTransactionType = CreditTransactionType.ADMIN_GRANT,
        reference_id: str | None = None,
    ) -> int:
        """Add credits for purchases, rewards and bonuses

        Raises:
            DuplicateTransaction: a purchase or reward with this reference was
                already recorded for the user; nothing was changed
        """
        new_balance = await self._add(user_id, amount, reason, transaction_type, reference_id)
        logger.info(f"Granted {amount} credits to user {user_id} ({reason}), balance {new_balance}")
        return new_balance

    async def get_balance(self, user_id: str) -> int:
        credits = await self.profiles.get_credits(user_id)
        if credits is None:
            raise ProfileNotFoundError()
        return credits

    async def has_transaction(
        self,
        user_id: str,
        transaction_type: CreditTransactionType,
        reference_id: str,
    ) -> bool:
        return await self.profiles.has_transaction(transaction_type, reference_id, user_id)

    async def get_transaction_history(self, user_id: str, limit: int = 50) -> list[dict[str, Any]]:
        entries = await self.profiles.list_transactions(user_id, limit=limit)
        return [
            {
                "id": str(entry.id),
                "transaction_type": entry.transaction_type.value,
                "delta": entry.delta,
                "balance_after": entry.balance_after,
                "reason": entry.reason,
                "reference_id": entry.reference_id,
                "created_at": entry.created_at.isoformat(),
            }
            for entry in entries
        ]

    async def _add(
        self,
        user_id: str,
        amount: int,
        reason: str,
        transaction_type: CreditTransactionType,
        reference_id: str | None,
    ) -> int:
        self._validate_amount(amount)

        try:
            new_balance = await self.profiles.credit(user_id, amount)
            if new_balance is None:
                await self.db.rollback()
                raise ProfileNotFoundError()

            await self.profiles.record_transaction(
                user_id=user_id,
                transaction_type=transaction_type,
                delta=amount,
                balance_after=new_balance,
                reason=reason,
                reference_id=reference_id,
            )
            await self.db.commit()
        except VerdictError:
            raise
        except DuplicateTransaction:
            await self.db.rollback()
            raise
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Failed to add credits for user {user_id}: {e}", exc_info=True)
            raise StorageError("Failed to add credits") from e

        self._invalidate(user_id)
        return new_balance

    def _validate_amount(self, amount: int) -> None:
        if not isinstance(amount, int) or amount <= 0:
            raise InvalidAmountError(f"Amount must be a positive integer, got {amount!r}")

    def _invalidate(self, user_id: str) -> None:
        if self.cache is not None:
            self.cache.invalidate_profile(user_id)
