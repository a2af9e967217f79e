"""Typed repositories, one per entity

Each repository exposes only the operations the marketplace core needs.
Contended fields (``Profile.credits`` and ``VerdictRequest.received_verdict_count``)
are only ever changed through single conditional UPDATE statements here,
never by reading a value and writing it back.

Repositories flush but never commit; the calling service owns the transaction.
"""

import logging
import uuid
from collections.abc import Iterable
from datetime import datetime

from sqlalchemy import and_, case, exists, func, literal, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from verdict.db.models import (
    CreditTransaction,
    CreditTransactionType,
    JudgeEarning,
    PayoutStatus,
    Profile,
    RequestStatus,
    VerdictRequest,
    VerdictResponse,
    utcnow,
)

logger = logging.getLogger(__name__)

ACCEPTING_STATUSES = (RequestStatus.OPEN, RequestStatus.IN_PROGRESS)


class DuplicateProfile(Exception):
    """A profile with this identity key already exists"""


class DuplicateVerdict(Exception):
    """The judge already has a verdict on this request"""


class DuplicateEarning(Exception):
    """An earning already exists for this verdict response"""


class DuplicateTransaction(Exception):
    """A purchase or reward with this reference was already recorded for the user"""


class ProfileRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, user_id: str) -> Profile | None:
        stmt = (
            select(Profile)
            .where(Profile.id == user_id)
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def insert(self, profile: Profile) -> Profile:
        self.db.add(profile)
        try:
            await self.db.flush()
        except IntegrityError as e:
            raise DuplicateProfile(profile.id) from e
        return profile

    async def get_credits(self, user_id: str) -> int | None:
        result = await self.db.execute(select(Profile.credits).where(Profile.id == user_id))
        return result.scalar_one_or_none()

    async def debit_if_sufficient(self, user_id: str, amount: int) -> int | None:
        """Decrement credits only if the balance covers ``amount``.

        Returns the new balance, or None when no row matched (missing profile
        or insufficient balance).
        """
        stmt = (
            update(Profile)
            .where(Profile.id == user_id)
            .where(Profile.credits >= amount)
            .values(credits=Profile.credits - amount, updated_at=utcnow())
            .returning(Profile.credits)
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def credit(self, user_id: str, amount: int) -> int | None:
        """Increment credits unconditionally; None if the profile does not exist"""
        stmt = (
            update(Profile)
            .where(Profile.id == user_id)
            .values(credits=Profile.credits + amount, updated_at=utcnow())
            .returning(Profile.credits)
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def update_fields(self, user_id: str, **values) -> Profile | None:
        stmt = (
            update(Profile)
            .where(Profile.id == user_id)
            .values(**values, updated_at=utcnow())
            .returning(Profile)
            .execution_options(synchronize_session=False)
        )
        result = await self.db.scalars(stmt, execution_options={"populate_existing": True})
        return result.one_or_none()

    async def record_transaction(
        self,
        user_id: str,
        transaction_type: CreditTransactionType,
        delta: int,
        balance_after: int,
        reason: str,
        reference_id: str | None = None,
    ) -> CreditTransaction:
        entry = CreditTransaction(
            id=uuid.uuid4(),
            user_id=user_id,
            transaction_type=transaction_type,
            delta=delta,
            balance_after=balance_after,
            reason=reason,
            reference_id=reference_id,
        )
        self.db.add(entry)
        try:
            await self.db.flush()
        except IntegrityError as e:
            raise DuplicateTransaction(f"{transaction_type.value}:{reference_id}") from e
        return entry

    async def has_transaction(
        self,
        transaction_type: CreditTransactionType,
        reference_id: str,
        user_id: str | None = None,
    ) -> bool:
        criteria = [
            CreditTransaction.transaction_type == transaction_type,
            CreditTransaction.reference_id == reference_id,
        ]
        if user_id is not None:
            criteria.append(CreditTransaction.user_id == user_id)
        result = await self.db.execute(select(exists().where(and_(*criteria))))
        return bool(result.scalar())

    async def list_transactions(self, user_id: str, limit: int = 50) -> list[CreditTransaction]:
        stmt = (
            select(CreditTransaction)
            .where(CreditTransaction.user_id == user_id)
            .order_by(CreditTransaction.created_at.desc())
            .limit(limit)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())


class VerdictRequestRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, request_id: uuid.UUID, include_deleted: bool = False) -> VerdictRequest | None:
        stmt = (
            select(VerdictRequest)
            .where(VerdictRequest.id == request_id)
            .execution_options(populate_existing=True)
        )
        if not include_deleted:
            stmt = stmt.where(VerdictRequest.deleted_at.is_(None))
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def insert(self, request: VerdictRequest) -> VerdictRequest:
        self.db.add(request)
        await self.db.flush()
        return request

    async def list_for_owner(
        self,
        user_id: str,
        limit: int = 20,
        offset: int = 0,
        status: RequestStatus | None = None,
    ) -> tuple[list[VerdictRequest], int]:
        stmt = (
            select(VerdictRequest)
            .where(VerdictRequest.user_id == user_id)
            .where(VerdictRequest.deleted_at.is_(None))
        )
        count_stmt = (
            select(func.count(VerdictRequest.id))
            .where(VerdictRequest.user_id == user_id)
            .where(VerdictRequest.deleted_at.is_(None))
        )
        if status:
            stmt = stmt.where(VerdictRequest.status == status)
            count_stmt = count_stmt.where(VerdictRequest.status == status)

        stmt = stmt.order_by(VerdictRequest.created_at.desc()).offset(offset).limit(limit)

        result = await self.db.execute(stmt)
        requests = result.scalars().all()

        count_result = await self.db.execute(count_stmt)
        total = count_result.scalar() or 0

        return list(requests), total

    async def list_open_for_judge(self, judge_id: str, limit: int = 20) -> list[VerdictRequest]:
        """Requests the judge may still respond to, oldest first"""
        already_judged = (
            select(VerdictResponse.id)
            .where(VerdictResponse.request_id == VerdictRequest.id)
            .where(VerdictResponse.judge_id == judge_id)
        )
        stmt = (
            select(VerdictRequest)
            .where(VerdictRequest.status.in_(ACCEPTING_STATUSES))
            .where(VerdictRequest.deleted_at.is_(None))
            .where(VerdictRequest.user_id != judge_id)
            .where(~already_judged.exists())
            .order_by(VerdictRequest.created_at.asc())
            .limit(limit)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def increment_received_count_with_ceiling(self, request_id: uuid.UUID) -> VerdictRequest | None:
        """Add one received verdict if a slot remains.

        The same statement moves the request to ``in_progress`` or, when the
        target is reached, to ``completed``. Returns None when the request is
        already full or no longer accepting verdicts.
        """
        status_type = VerdictRequest.__table__.c.status.type
        new_count = VerdictRequest.received_verdict_count + 1
        stmt = (
            update(VerdictRequest)
            .where(VerdictRequest.id == request_id)
            .where(VerdictRequest.status.in_(ACCEPTING_STATUSES))
            .where(VerdictRequest.received_verdict_count < VerdictRequest.target_verdict_count)
            .values(
                received_verdict_count=new_count,
                status=case(
                    (
                        new_count >= VerdictRequest.target_verdict_count,
                        literal(RequestStatus.COMPLETED, status_type),
                    ),
                    else_=literal(RequestStatus.IN_PROGRESS, status_type),
                ),
                updated_at=utcnow(),
            )
            .returning(VerdictRequest)
            .execution_options(synchronize_session=False)
        )
        result = await self.db.scalars(stmt, execution_options={"populate_existing": True})
        return result.one_or_none()

    async def transition_status(
        self,
        request_id: uuid.UUID,
        from_statuses: Iterable[RequestStatus],
        to_status: RequestStatus,
    ) -> VerdictRequest | None:
        """Move to ``to_status`` only if the current status is one of ``from_statuses``"""
        stmt = (
            update(VerdictRequest)
            .where(VerdictRequest.id == request_id)
            .where(VerdictRequest.status.in_(list(from_statuses)))
            .values(status=to_status, updated_at=utcnow())
            .returning(VerdictRequest)
            .execution_options(synchronize_session=False)
        )
        result = await self.db.scalars(stmt, execution_options={"populate_existing": True})
        return result.one_or_none()

    async def soft_delete(self, request_id: uuid.UUID, user_id: str) -> bool:
        stmt = (
            update(VerdictRequest)
            .where(VerdictRequest.id == request_id)
            .where(VerdictRequest.user_id == user_id)
            .where(VerdictRequest.deleted_at.is_(None))
            .values(deleted_at=utcnow(), updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        return result.rowcount > 0


class VerdictResponseRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def insert(self, response: VerdictResponse) -> VerdictResponse:
        self.db.add(response)
        try:
            await self.db.flush()
        except IntegrityError as e:
            raise DuplicateVerdict(f"{response.request_id}:{response.judge_id}") from e
        return response

    async def exists_for(self, request_id: uuid.UUID, judge_id: str) -> bool:
        stmt = select(
            exists().where(
                and_(
                    VerdictResponse.request_id == request_id,
                    VerdictResponse.judge_id == judge_id,
                )
            )
        )
        result = await self.db.execute(stmt)
        return bool(result.scalar())

    async def list_for_request(self, request_id: uuid.UUID) -> list[VerdictResponse]:
        stmt = (
            select(VerdictResponse)
            .where(VerdictResponse.request_id == request_id)
            .order_by(VerdictResponse.created_at.asc())
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def count_for_judge(self, judge_id: str) -> int:
        stmt = select(func.count(VerdictResponse.id)).where(VerdictResponse.judge_id == judge_id)
        result = await self.db.execute(stmt)
        return result.scalar() or 0


class JudgeEarningRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def insert(self, earning: JudgeEarning) -> JudgeEarning:
        self.db.add(earning)
        try:
            await self.db.flush()
        except IntegrityError as e:
            raise DuplicateEarning(str(earning.verdict_response_id)) from e
        return earning

    async def sum_by_status(self, judge_id: str) -> dict[PayoutStatus, int]:
        stmt = (
            select(JudgeEarning.payout_status, func.sum(JudgeEarning.amount_cents))
            .where(JudgeEarning.judge_id == judge_id)
            .group_by(JudgeEarning.payout_status)
        )
        result = await self.db.execute(stmt)
        return {row[0]: int(row[1] or 0) for row in result.all()}

    async def list_for_judge(self, judge_id: str, limit: int = 50) -> list[JudgeEarning]:
        stmt = (
            select(JudgeEarning)
            .where(JudgeEarning.judge_id == judge_id)
            .order_by(JudgeEarning.created_at.desc())
            .limit(limit)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def release_matured(self, now: datetime) -> list[str]:
        """Promote pending earnings past their maturation time; returns affected judge ids"""
        stmt = (
            update(JudgeEarning)
            .where(JudgeEarning.payout_status == PayoutStatus.PENDING)
            .where(JudgeEarning.available_at <= now)
            .values(payout_status=PayoutStatus.AVAILABLE)
            .returning(JudgeEarning.judge_id)
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        return [row[0] for row in result.all()]

    async def mark_available_paid(self, judge_id: str, now: datetime) -> list[int]:
        """Move every available earning of a judge to paid; returns the paid amounts"""
        stmt = (
            update(JudgeEarning)
            .where(JudgeEarning.judge_id == judge_id)
            .where(JudgeEarning.payout_status == PayoutStatus.AVAILABLE)
            .values(payout_status=PayoutStatus.PAID, paid_at=now)
            .returning(JudgeEarning.amount_cents)
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        return [row[0] for row in result.all()]
