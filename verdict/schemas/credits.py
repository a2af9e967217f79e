"""Pydantic schemas for credit balances and purchases"""

from datetime import datetime

from pydantic import BaseModel, Field


class BalanceResponse(BaseModel):
    user_id: str
    credits: int


class CreditTransactionResponse(BaseModel):
    id: str
    transaction_type: str
    delta: int
    balance_after: int
    reason: str
    reference_id: str | None
    created_at: datetime


class TransactionHistoryResponse(BaseModel):
    transactions: list[CreditTransactionResponse]
    count: int


class CreditPackageResponse(BaseModel):
    package_id: str
    name: str
    credits: int
    price_cents: int
    price: float


class CheckoutRequest(BaseModel):
    package_id: str = Field(..., description="Credit package to purchase")
    success_url: str | None = Field(None, max_length=2048)
    cancel_url: str | None = Field(None, max_length=2048)


class CheckoutResponse(BaseModel):
    session_id: str
    url: str | None
