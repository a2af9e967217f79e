"""Credit balance, history and purchase endpoints"""

import logging

from fastapi import APIRouter, Depends
from fastapi import Query as QueryParam

from verdict.api.deps import get_billing_service, get_current_profile, get_ledger
from verdict.schemas.credits import (
    BalanceResponse,
    CheckoutRequest,
    CheckoutResponse,
    CreditPackageResponse,
    TransactionHistoryResponse,
)
from verdict.schemas.profiles import ProfileResponse
from verdict.services.billing import BillingService
from verdict.services.credits import CreditLedger
from verdict.services.pricing import CREDIT_PACKAGES, cents_to_dollars

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/balance", response_model=BalanceResponse)
async def get_balance(
    profile: ProfileResponse = Depends(get_current_profile),
    ledger: CreditLedger = Depends(get_ledger),
) -> BalanceResponse:
    credits = await ledger.get_balance(profile.id)
    return BalanceResponse(user_id=profile.id, credits=credits)


@router.get("/transactions", response_model=TransactionHistoryResponse)
async def get_transactions(
    limit: int = QueryParam(50, ge=1, le=200),
    profile: ProfileResponse = Depends(get_current_profile),
    ledger: CreditLedger = Depends(get_ledger),
) -> TransactionHistoryResponse:
    transactions = await ledger.get_transaction_history(profile.id, limit=limit)
    return TransactionHistoryResponse(transactions=transactions, count=len(transactions))


@router.get("/packages", response_model=list[CreditPackageResponse])
async def list_packages() -> list[CreditPackageResponse]:
    return [
        CreditPackageResponse(
            package_id=package.package_id,
            name=package.name,
            credits=package.credits,
            price_cents=package.price_cents,
            price=cents_to_dollars(package.price_cents),
        )
        for package in CREDIT_PACKAGES.values()
    ]


@router.post("/checkout", response_model=CheckoutResponse)
async def create_checkout(
    payload: CheckoutRequest,
    profile: ProfileResponse = Depends(get_current_profile),
    billing: BillingService = Depends(get_billing_service),
) -> CheckoutResponse:
    """Start a Stripe Checkout session for a credit package"""
    session = await billing.create_checkout_session(
        profile.id, payload.package_id, payload.success_url, payload.cancel_url
    )
    return CheckoutResponse(**session)
