"""Database models for the Verdict marketplace"""

import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    text,
)
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func

from verdict.db.database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TimestampMixin:
    """Mixin for adding timestamp columns to models"""
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        onupdate=utcnow,
        nullable=False
    )


class SoftDeleteMixin:
    """Mixin for soft delete functionality"""
    deleted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        default=None
    )


class RequestStatus(enum.Enum):
    """Verdict request lifecycle"""
    OPEN = "open"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class MediaType(enum.Enum):
    PHOTO = "photo"
    TEXT = "text"


class PayoutStatus(enum.Enum):
    """Judge earning payout status"""
    PENDING = "pending"
    AVAILABLE = "available"
    PAID = "paid"


class CreditTransactionType(enum.Enum):
    """Reasons a credit balance can move"""
    SIGNUP_BONUS = "signup_bonus"
    PURCHASE = "purchase"
    REQUEST_DEBIT = "request_debit"
    REFUND = "refund"
    JUDGE_REWARD = "judge_reward"
    ADMIN_GRANT = "admin_grant"


# Enum columns store member names
IDEMPOTENT_TRANSACTION_FILTER = "transaction_type IN ('PURCHASE', 'JUDGE_REWARD')"


class Profile(Base):
    """One row per authenticated identity"""
    __tablename__ = "profiles"

    # Identity key assigned by the auth provider
    id: Mapped[str] = mapped_column(String(255), primary_key=True)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    display_name: Mapped[str | None] = mapped_column(String(255), nullable=True)

    credits: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    is_judge: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    is_admin: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        onupdate=utcnow,
        nullable=False
    )

    __table_args__ = (
        CheckConstraint("credits >= 0", name="check_credits_non_negative"),
        Index("idx_profile_email", "email"),
    )


class VerdictRequest(Base, TimestampMixin, SoftDeleteMixin):
    """A submitter's feedback request"""
    __tablename__ = "verdict_requests"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4
    )
    user_id: Mapped[str] = mapped_column(
        String(255),
        ForeignKey("profiles.id", ondelete="CASCADE"),
        nullable=False
    )

    # Content
    category: Mapped[str] = mapped_column(String(50), nullable=False)
    subcategory: Mapped[str | None] = mapped_column(String(100), nullable=True)
    media_type: Mapped[MediaType] = mapped_column(SQLEnum(MediaType), nullable=False)
    media_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    text_content: Mapped[str | None] = mapped_column(Text, nullable=True)
    context: Mapped[str] = mapped_column(Text, nullable=False)

    # Lifecycle
    status: Mapped[RequestStatus] = mapped_column(
        SQLEnum(RequestStatus),
        default=RequestStatus.OPEN,
        nullable=False
    )
    tier: Mapped[str] = mapped_column(String(20), default="basic", nullable=False)
    credits_charged: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    target_verdict_count: Mapped[int] = mapped_column(Integer, default=3, nullable=False)
    received_verdict_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # Relationships
    responses = relationship("VerdictResponse", back_populates="request")

    __table_args__ = (
        Index("idx_request_user", "user_id"),
        Index("idx_request_status", "status"),
        Index("idx_request_created", "created_at"),
        CheckConstraint("target_verdict_count >= 1", name="check_target_positive"),
        CheckConstraint("received_verdict_count >= 0", name="check_received_non_negative"),
        CheckConstraint(
            "received_verdict_count <= target_verdict_count",
            name="check_received_within_target"
        ),
    )


class VerdictResponse(Base, TimestampMixin):
    """A judge's verdict on a request"""
    __tablename__ = "verdict_responses"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4
    )
    request_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("verdict_requests.id", ondelete="CASCADE"),
        nullable=False
    )
    judge_id: Mapped[str] = mapped_column(
        String(255),
        ForeignKey("profiles.id", ondelete="CASCADE"),
        nullable=False
    )

    rating: Mapped[int | None] = mapped_column(Integer, nullable=True)
    feedback: Mapped[str] = mapped_column(Text, nullable=False)
    tone: Mapped[str] = mapped_column(String(20), nullable=False)
    quality_score: Mapped[float | None] = mapped_column(nullable=True)

    # Relationships
    request = relationship("VerdictRequest", back_populates="responses")
    earning = relationship("JudgeEarning", back_populates="verdict_response", uselist=False)

    __table_args__ = (
        Index("idx_response_request", "request_id"),
        Index("idx_response_judge", "judge_id"),
        UniqueConstraint("request_id", "judge_id", name="uq_request_judge"),
        CheckConstraint("rating IS NULL OR (rating >= 1 AND rating <= 10)", name="check_rating"),
    )


class JudgeEarning(Base):
    """Exactly one earning per verdict response"""
    __tablename__ = "judge_earnings"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4
    )
    verdict_response_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("verdict_responses.id", ondelete="CASCADE"),
        nullable=False
    )
    judge_id: Mapped[str] = mapped_column(
        String(255),
        ForeignKey("profiles.id", ondelete="CASCADE"),
        nullable=False
    )

    # Frozen at creation from the tier table
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    tier: Mapped[str] = mapped_column(String(20), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), default="USD", nullable=False)

    payout_status: Mapped[PayoutStatus] = mapped_column(
        SQLEnum(PayoutStatus),
        default=PayoutStatus.PENDING,
        nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False
    )
    available_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    verdict_response = relationship("VerdictResponse", back_populates="earning")

    __table_args__ = (
        UniqueConstraint("verdict_response_id", name="uq_earning_verdict_response"),
        Index("idx_earning_judge_status", "judge_id", "payout_status"),
        Index("idx_earning_available_at", "available_at"),
        CheckConstraint("amount_cents >= 0", name="check_earning_amount"),
    )


class CreditTransaction(Base):
    """Append-only log of credit deltas"""
    __tablename__ = "credit_transactions"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4
    )
    user_id: Mapped[str] = mapped_column(
        String(255),
        ForeignKey("profiles.id", ondelete="CASCADE"),
        nullable=False
    )
    transaction_type: Mapped[CreditTransactionType] = mapped_column(
        SQLEnum(CreditTransactionType),
        nullable=False
    )
    delta: Mapped[int] = mapped_column(Integer, nullable=False)
    balance_after: Mapped[int] = mapped_column(Integer, nullable=False)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    # Request id, checkout session id, ...
    reference_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False
    )

    __table_args__ = (
        Index("idx_credit_tx_user", "user_id"),
        Index("idx_credit_tx_type_ref", "transaction_type", "reference_id"),
        # One purchase per checkout session, one reward per milestone
        Index(
            "uq_credit_tx_idempotent_ref",
            "user_id",
            "transaction_type",
            "reference_id",
            unique=True,
            postgresql_where=text(IDEMPOTENT_TRANSACTION_FILTER),
            sqlite_where=text(IDEMPOTENT_TRANSACTION_FILTER),
        ),
        Index("idx_credit_tx_created", "created_at"),
    )
