"""Credit purchases through Stripe Checkout"""

import logging
from typing import Any

import stripe
from sqlalchemy.ext.asyncio import AsyncSession

from verdict.config import settings
from verdict.db.models import CreditTransactionType
from verdict.db.repositories import DuplicateTransaction
from verdict.errors import InvalidAmountError, PaymentsDisabledError, ServiceUnavailableError
from verdict.services.cache import EntityCache
from verdict.services.credits import CreditLedger
from verdict.services.pricing import CreditPackage, get_credit_package

logger = logging.getLogger(__name__)

CREDIT_PURCHASE = "credit_purchase"


class BillingService:
    """Creates checkout sessions and applies completed purchases to the ledger"""

    def __init__(
        self,
        db: AsyncSession,
        cache: EntityCache | None = None,
        ledger: CreditLedger | None = None,
        api_key: str | None = None,
    ):
        self.db = db
        self.ledger = ledger or CreditLedger(db, cache)
        self.api_key = api_key or settings.stripe_secret_key
        self.stripe_client = stripe

    def resolve_package(self, package_id: str) -> CreditPackage:
        package = get_credit_package(package_id)
        if package is None:
            raise InvalidAmountError(f"Unknown credit package: {package_id}")
        return package

    async def create_checkout_session(
        self,
        user_id: str,
        package_id: str,
        success_url: str | None = None,
        cancel_url: str | None = None,
    ) -> dict[str, Any]:
        if not settings.is_payments_configured():
            raise PaymentsDisabledError()

        package = self.resolve_package(package_id)

        try:
            session = self.stripe_client.checkout.Session.create(
                api_key=self.api_key,
                mode="payment",
                line_items=[{
                    "price_data": {
                        "currency": "usd",
                        "unit_amount": package.price_cents,
                        "product_data": {
                            "name": f"{package.name} credit pack",
                            "description": f"{package.credits} Verdict credits",
                        },
                    },
                    "quantity": 1,
                }],
                client_reference_id=user_id,
                metadata={
                    "type": CREDIT_PURCHASE,
                    "user_id": user_id,
                    "credits": str(package.credits),
                    "package_id": package.package_id,
                },
                success_url=success_url or settings.checkout_success_url,
                cancel_url=cancel_url or settings.checkout_cancel_url,
            )
        except stripe.StripeError as e:
            logger.error(f"Stripe checkout creation failed for user {user_id}: {e}")
            raise ServiceUnavailableError("Payment provider unavailable. Please try again.") from e

        logger.info(f"Created checkout session {session['id']} for user {user_id} ({package.package_id})")
        return {"session_id": session["id"], "url": session.get("url")}

    async def handle_checkout_completed(self, session: dict[str, Any]) -> bool:
        """Grant purchased credits once per checkout session.

        Returns True when credits were granted, False when the event was
        ignored (not a credit purchase, unpaid, or already applied).
        """
        metadata = session.get("metadata") or {}
        session_id = session.get("id")

        if metadata.get("type") != CREDIT_PURCHASE:
            logger.info(f"Ignoring checkout session {session_id}: not a credit purchase")
            return False
        if session.get("payment_status") not in (None, "paid"):
            logger.info(f"Ignoring checkout session {session_id}: payment status {session.get('payment_status')}")
            return False

        user_id = metadata.get("user_id")
        try:
            credits = int(metadata.get("credits", 0))
        except (TypeError, ValueError):
            credits = 0
        if not session_id or not user_id or credits <= 0:
            logger.error(f"Malformed credit purchase metadata on session {session_id}: {metadata}")
            return False

        if await self.ledger.has_transaction(user_id, CreditTransactionType.PURCHASE, session_id):
            logger.info(f"Checkout session {session_id} already applied, skipping")
            return False

        package_id = metadata.get("package_id", "custom")
        try:
            await self.ledger.grant_credits(
                user_id,
                credits,
                f"Credit purchase ({package_id})",
                transaction_type=CreditTransactionType.PURCHASE,
                reference_id=session_id,
            )
        except DuplicateTransaction:
            logger.info(f"Checkout session {session_id} was applied by a concurrent delivery")
            return False
        return True
