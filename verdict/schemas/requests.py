"""Pydantic schemas for verdict requests and responses"""

from datetime import datetime
from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, Field, field_validator, model_validator

from verdict.services.pricing import VERDICT_TIERS

Category = Literal["appearance", "profile", "writing", "decision"]
Tone = Literal["honest", "constructive", "encouraging"]


class VerdictRequestCreate(BaseModel):
    category: Category
    subcategory: str | None = Field(None, max_length=100)
    media_type: Literal["photo", "text"]
    media_url: str | None = Field(None, max_length=2048)
    text_content: str | None = Field(None, max_length=5000)
    context: str = Field(..., min_length=20, max_length=500)
    tier: str = Field(default="basic")

    @field_validator("tier")
    @classmethod
    def validate_tier(cls, v: str) -> str:
        v = v.lower()
        if v not in VERDICT_TIERS:
            raise ValueError(f"Unknown tier: {v}")
        return v

    @model_validator(mode="after")
    def validate_media(self) -> "VerdictRequestCreate":
        if self.media_type == "photo" and not self.media_url:
            raise ValueError("Photo URL is required for photo requests")
        if self.media_type == "text" and not self.text_content:
            raise ValueError("Text content is required for text requests")
        return self


class VerdictRequestResponse(BaseModel):
    id: UUID
    user_id: str
    category: str
    subcategory: str | None
    media_type: str
    media_url: str | None
    text_content: str | None
    context: str
    status: str
    tier: str
    credits_charged: int
    target_verdict_count: int
    received_verdict_count: int
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}

    @field_validator("status", "media_type", mode="before")
    @classmethod
    def enum_value(cls, v: Any) -> Any:
        return getattr(v, "value", v)


class VerdictRequestListResponse(BaseModel):
    requests: list[VerdictRequestResponse]
    total: int
    limit: int
    offset: int


class VerdictCreate(BaseModel):
    request_id: UUID
    rating: int | None = Field(None, ge=1, le=10)
    feedback: str = Field(..., min_length=50, max_length=500)
    tone: Tone


class VerdictResponseSchema(BaseModel):
    id: UUID
    request_id: UUID
    judge_id: str
    rating: int | None
    feedback: str
    tone: str
    quality_score: float | None
    created_at: datetime

    model_config = {"from_attributes": True}


class SubmitVerdictResponse(BaseModel):
    request: VerdictRequestResponse
    verdict: VerdictResponseSchema
    earning_amount: float


class JudgeQueueResponse(BaseModel):
    requests: list[VerdictRequestResponse]
    count: int
