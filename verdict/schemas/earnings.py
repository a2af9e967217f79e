"""Pydantic schemas for judge earnings"""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, field_validator


class EarningsSummary(BaseModel):
    """Earnings totals in whole currency units (dollars)"""
    total_earned: float
    pending: float
    available_for_payout: float
    paid: float


class JudgeEarningResponse(BaseModel):
    id: UUID
    verdict_response_id: UUID
    judge_id: str
    amount_cents: int
    tier: str
    payout_status: str
    created_at: datetime
    available_at: datetime
    paid_at: datetime | None

    model_config = {"from_attributes": True}

    @field_validator("payout_status", mode="before")
    @classmethod
    def enum_value(cls, v: Any) -> Any:
        return getattr(v, "value", v)


class JudgeEarningListResponse(BaseModel):
    earnings: list[JudgeEarningResponse]
    count: int


class ReleaseEarningsResponse(BaseModel):
    released: int


class PayoutResponse(BaseModel):
    earnings_paid: int
    amount: float
