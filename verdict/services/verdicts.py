"""Verdict request state machine

Requests move ``open -> in_progress -> completed``; ``cancelled`` is reachable
from either non-terminal state. The received-verdict counter and the status
change together in one conditional UPDATE, so a request never receives more
verdicts than its target.
"""

import logging
import uuid
from dataclasses import dataclass

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from verdict.config import settings
from verdict.db.models import (
    CreditTransactionType,
    MediaType,
    RequestStatus,
    VerdictRequest,
    VerdictResponse,
)
from verdict.db.repositories import (
    ACCEPTING_STATUSES,
    DuplicateTransaction,
    DuplicateVerdict,
    VerdictRequestRepository,
    VerdictResponseRepository,
)
from verdict.errors import (
    AlreadyJudgedError,
    CannotJudgeOwnRequestError,
    InvalidTransitionError,
    PermissionDeniedError,
    RequestAlreadyFilledError,
    RequestClosedError,
    RequestNotFoundError,
    StorageError,
    VerdictError,
)
from verdict.schemas.earnings import JudgeEarningResponse
from verdict.schemas.requests import (
    VerdictCreate,
    VerdictRequestCreate,
    VerdictRequestResponse,
    VerdictResponseSchema,
)
from verdict.services.cache import CacheKey, EntityCache
from verdict.services.credits import REFUND_REASON_REQUEST_FAILED, CreditLedger
from verdict.services.earnings import EarningsService
from verdict.services.pricing import get_tier
from verdict.services.profiles import ProfileService

logger = logging.getLogger(__name__)

JUDGE_REWARD_REASON = "Judgment completion reward"

ALLOWED_TRANSITIONS: dict[RequestStatus, frozenset[RequestStatus]] = {
    RequestStatus.OPEN: frozenset({
        RequestStatus.IN_PROGRESS,
        RequestStatus.COMPLETED,
        RequestStatus.CANCELLED,
    }),
    RequestStatus.IN_PROGRESS: frozenset({RequestStatus.COMPLETED, RequestStatus.CANCELLED}),
    RequestStatus.COMPLETED: frozenset(),
    RequestStatus.CANCELLED: frozenset(),
}


def is_valid_transition(current: RequestStatus, target: RequestStatus) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, frozenset())


def cancellable_statuses() -> list[RequestStatus]:
    return [s for s in RequestStatus if is_valid_transition(s, RequestStatus.CANCELLED)]


@dataclass(frozen=True)
class VerdictResult:
    request: VerdictRequestResponse
    verdict: VerdictResponseSchema
    earning: JudgeEarningResponse


class VerdictService:
    def __init__(
        self,
        db: AsyncSession,
        cache: EntityCache | None = None,
        ledger: CreditLedger | None = None,
        earnings: EarningsService | None = None,
        profiles: ProfileService | None = None,
    ):
        self.db = db
        self.cache = cache
        self.ledger = ledger or CreditLedger(db, cache)
        self.earnings = earnings or EarningsService(db, cache)
        self.profiles = profiles or ProfileService(db, cache)
        self.requests = VerdictRequestRepository(db)
        self.responses = VerdictResponseRepository(db)

    async def create_verdict_request(
        self,
        user_id: str,
        payload: VerdictRequestCreate,
    ) -> VerdictRequestResponse:
        """Charge the tier's credits and open a new request.

        Raises:
            InsufficientCreditsError: nothing was written
            StorageError: the request could not be stored; the debit was refunded
        """
        await self.profiles.require_profile(user_id)

        tier = get_tier(payload.tier)
        request_id = uuid.uuid4()

        await self.ledger.deduct_credits(
            user_id,
            tier.credits,
            reason=f"Verdict request ({tier.name})",
            transaction_type=CreditTransactionType.REQUEST_DEBIT,
            reference_id=str(request_id),
        )

        request = VerdictRequest(
            id=request_id,
            user_id=user_id,
            category=payload.category,
            subcategory=payload.subcategory,
            media_type=MediaType(payload.media_type),
            media_url=payload.media_url,
            text_content=payload.text_content,
            context=payload.context,
            status=RequestStatus.OPEN,
            tier=tier.name,
            credits_charged=tier.credits,
            target_verdict_count=tier.verdicts,
            received_verdict_count=0,
        )

        try:
            await self.requests.insert(request)
            snapshot = VerdictRequestResponse.model_validate(request)
            await self.db.commit()
        except Exception as e:
            # Any failure after the debit is compensated
            await self.db.rollback()
            logger.error(f"Failed to create request for user {user_id}: {e}", exc_info=True)
            await self._refund_failed_creation(user_id, tier.credits, request_id)
            raise StorageError("Failed to create request. Your credits have been refunded.") from e

        logger.info(
            f"Created {tier.name} request {request_id} for user {user_id} "
            f"({tier.credits} credits, {tier.verdicts} verdicts)"
        )
        return snapshot

    async def add_judge_verdict(
        self,
        request_id: uuid.UUID,
        judge_id: str,
        payload: VerdictCreate,
    ) -> VerdictResult:
        request = await self.requests.get(request_id)
        if request is None:
            raise RequestNotFoundError()

        if request.user_id == judge_id:
            raise CannotJudgeOwnRequestError()
        if request.status not in ACCEPTING_STATUSES:
            raise RequestClosedError()
        if await self.responses.exists_for(request_id, judge_id):
            raise AlreadyJudgedError()

        response = VerdictResponse(
            id=uuid.uuid4(),
            request_id=request_id,
            judge_id=judge_id,
            rating=payload.rating,
            feedback=payload.feedback,
            tone=payload.tone,
        )

        try:
            await self.responses.insert(response)
        except DuplicateVerdict as e:
            await self.db.rollback()
            raise AlreadyJudgedError() from e
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Failed to store verdict on request {request_id}: {e}", exc_info=True)
            raise StorageError("Failed to store verdict") from e

        try:
            updated = await self.requests.increment_received_count_with_ceiling(request_id)
            if updated is None:
                await self.db.rollback()
                raise await self._rejection_for(request_id)

            earning = await self.earnings.record_earning(
                response.id, judge_id, updated.target_verdict_count
            )
            result = VerdictResult(
                request=VerdictRequestResponse.model_validate(updated),
                verdict=VerdictResponseSchema.model_validate(response),
                earning=JudgeEarningResponse.model_validate(earning),
            )
            await self.db.commit()
        except VerdictError:
            await self.db.rollback()
            raise
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Failed to record verdict on request {request_id}: {e}", exc_info=True)
            raise StorageError("Failed to record verdict") from e

        self._invalidate_request(request_id)
        if self.cache is not None:
            self.cache.invalidate_earnings(judge_id)

        logger.info(
            f"Judge {judge_id} submitted verdict {result.verdict.id} on request {request_id} "
            f"({result.request.received_verdict_count}/{result.request.target_verdict_count}, "
            f"{result.request.status})"
        )

        await self._reward_judge(judge_id, result.verdict.id)
        return result

    async def cancel_request(
        self,
        request_id: uuid.UUID,
        actor_id: str,
        is_admin: bool = False,
    ) -> VerdictRequestResponse:
        """Cancel a non-terminal request. Credits are not refunded."""
        request = await self.requests.get(request_id)
        if request is None:
            raise RequestNotFoundError()
        if request.user_id != actor_id and not is_admin:
            raise PermissionDeniedError("Only the owner can cancel this request")
        if not is_valid_transition(request.status, RequestStatus.CANCELLED):
            raise InvalidTransitionError(
                f"Cannot cancel a request that is {request.status.value}"
            )

        try:
            updated = await self.requests.transition_status(
                request_id, cancellable_statuses(), RequestStatus.CANCELLED
            )
            if updated is None:
                await self.db.rollback()
                raise InvalidTransitionError("Request changed state before it could be cancelled")
            snapshot = VerdictRequestResponse.model_validate(updated)
            await self.db.commit()
        except VerdictError:
            raise
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Failed to cancel request {request_id}: {e}", exc_info=True)
            raise StorageError("Failed to cancel request") from e

        self._invalidate_request(request_id)
        logger.info(f"Request {request_id} cancelled by {actor_id}")
        return snapshot

    async def delete_request(self, request_id: uuid.UUID, owner_id: str) -> None:
        request = await self.requests.get(request_id)
        if request is None:
            raise RequestNotFoundError()
        if request.user_id != owner_id:
            raise PermissionDeniedError("Only the owner can delete this request")

        try:
            deleted = await self.requests.soft_delete(request_id, owner_id)
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Failed to delete request {request_id}: {e}", exc_info=True)
            raise StorageError("Failed to delete request") from e

        if not deleted:
            raise RequestNotFoundError()
        self._invalidate_request(request_id)
        logger.info(f"Request {request_id} soft-deleted by {owner_id}")

    async def get_request(
        self,
        request_id: uuid.UUID,
        viewer_id: str,
        is_admin: bool = False,
    ) -> VerdictRequestResponse:
        snapshot = None
        key = CacheKey.request(request_id)
        if self.cache is not None:
            snapshot = self.cache.get(key)

        if snapshot is None:
            request = await self.requests.get(request_id)
            if request is None:
                raise RequestNotFoundError()
            snapshot = VerdictRequestResponse.model_validate(request)
            if self.cache is not None:
                self.cache.set(key, snapshot)

        if snapshot.user_id != viewer_id and not is_admin:
            # Hide existence from other users
            raise RequestNotFoundError()
        return snapshot

    async def list_requests(
        self,
        user_id: str,
        limit: int = 20,
        offset: int = 0,
        status: RequestStatus | None = None,
    ) -> tuple[list[VerdictRequestResponse], int]:
        requests, total = await self.requests.list_for_owner(user_id, limit, offset, status)
        return [VerdictRequestResponse.model_validate(r) for r in requests], total

    async def list_available_for_judge(
        self,
        judge_id: str,
        limit: int = 20,
    ) -> list[VerdictRequestResponse]:
        requests = await self.requests.list_open_for_judge(judge_id, limit)
        return [VerdictRequestResponse.model_validate(r) for r in requests]

    async def list_verdicts(
        self,
        request_id: uuid.UUID,
        viewer_id: str,
        is_admin: bool = False,
    ) -> list[VerdictResponseSchema]:
        await self.get_request(request_id, viewer_id, is_admin)
        responses = await self.responses.list_for_request(request_id)
        return [VerdictResponseSchema.model_validate(r) for r in responses]

    async def _rejection_for(self, request_id: uuid.UUID) -> VerdictError:
        """Explain why the ceiling-guarded increment matched no row"""
        current = await self.requests.get(request_id, include_deleted=True)
        if current is None or current.status == RequestStatus.CANCELLED:
            return RequestClosedError()
        return RequestAlreadyFilledError()

    async def _refund_failed_creation(self, user_id: str, amount: int, request_id: uuid.UUID) -> None:
        try:
            await self.ledger.refund_credits(
                user_id, amount, REFUND_REASON_REQUEST_FAILED, reference_id=str(request_id)
            )
        except VerdictError as e:
            logger.critical(
                f"Refund of {amount} credits to user {user_id} for request {request_id} failed: {e.message}",
                exc_info=True,
            )

    async def _reward_judge(self, judge_id: str, verdict_id: uuid.UUID) -> None:
        """Grant one credit for every N verdicts a judge has given.

        Each milestone is granted at most once: the reference is unique per
        judge, so concurrent verdicts reading the same count grant once, and a
        milestone missed by an earlier verdict is granted by a later one.
        """
        every = settings.judgments_per_reward_credit
        try:
            milestone = await self.responses.count_for_judge(judge_id) // every
            if milestone == 0:
                return
            reference_id = f"reward:{milestone}"
            if await self.ledger.has_transaction(judge_id, CreditTransactionType.JUDGE_REWARD, reference_id):
                return
            await self.ledger.grant_credits(
                judge_id,
                1,
                JUDGE_REWARD_REASON,
                transaction_type=CreditTransactionType.JUDGE_REWARD,
                reference_id=reference_id,
            )
        except DuplicateTransaction:
            logger.info(f"Reward milestone for judge {judge_id} already granted")
        except (VerdictError, SQLAlchemyError) as e:
            logger.error(f"Failed to reward judge {judge_id} after verdict {verdict_id}: {e}", exc_info=True)

    def _invalidate_request(self, request_id: uuid.UUID) -> None:
        if self.cache is not None:
            self.cache.invalidate_request(request_id)
