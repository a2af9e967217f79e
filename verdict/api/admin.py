"""Administrative endpoints: earnings maturation, payouts and credit grants"""

import logging

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from verdict.api.deps import get_earnings_service, get_ledger, require_admin
from verdict.db.models import CreditTransactionType
from verdict.schemas.credits import BalanceResponse
from verdict.schemas.earnings import PayoutResponse, ReleaseEarningsResponse
from verdict.schemas.profiles import ProfileResponse
from verdict.services.credits import CreditLedger
from verdict.services.earnings import EarningsService
from verdict.services.pricing import cents_to_dollars

logger = logging.getLogger(__name__)
router = APIRouter()


class GrantCreditsRequest(BaseModel):
    user_id: str
    amount: int = Field(..., gt=0, le=1000)
    reason: str = Field(..., min_length=1, max_length=255)


@router.post("/earnings/release", response_model=ReleaseEarningsResponse)
async def release_earnings(
    admin: ProfileResponse = Depends(require_admin),
    service: EarningsService = Depends(get_earnings_service),
) -> ReleaseEarningsResponse:
    """Promote matured pending earnings to available"""
    released = await service.release_matured_earnings()
    logger.info(f"Admin {admin.id} released {released} matured earnings")
    return ReleaseEarningsResponse(released=released)


@router.post("/earnings/{judge_id}/payout", response_model=PayoutResponse)
async def payout_judge(
    judge_id: str,
    admin: ProfileResponse = Depends(require_admin),
    service: EarningsService = Depends(get_earnings_service),
) -> PayoutResponse:
    """Mark a judge's available earnings as paid"""
    payout = await service.mark_paid(judge_id)
    logger.info(f"Admin {admin.id} recorded payout for judge {judge_id}")
    return PayoutResponse(earnings_paid=payout.earnings_paid, amount=cents_to_dollars(payout.amount_cents))


@router.post("/credits/grant", response_model=BalanceResponse)
async def grant_credits(
    payload: GrantCreditsRequest,
    admin: ProfileResponse = Depends(require_admin),
    ledger: CreditLedger = Depends(get_ledger),
) -> BalanceResponse:
    balance = await ledger.grant_credits(
        payload.user_id,
        payload.amount,
        f"{payload.reason} (by {admin.id})",
        transaction_type=CreditTransactionType.ADMIN_GRANT,
    )
    return BalanceResponse(user_id=payload.user_id, credits=balance)
