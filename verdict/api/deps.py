"""Shared FastAPI dependencies: services wired to the request's session"""

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from verdict.auth import get_current_identity
from verdict.db.database import get_db
from verdict.errors import NotAJudgeError, PermissionDeniedError
from verdict.schemas.profiles import ProfileResponse
from verdict.services.billing import BillingService
from verdict.services.cache import EntityCache
from verdict.services.credits import CreditLedger
from verdict.services.earnings import EarningsService
from verdict.services.profiles import Identity, ProfileService
from verdict.services.verdicts import VerdictService


def get_cache(request: Request) -> EntityCache:
    return request.app.state.cache


def get_profile_service(
    db: AsyncSession = Depends(get_db),
    cache: EntityCache = Depends(get_cache),
) -> ProfileService:
    return ProfileService(db, cache)


def get_ledger(
    db: AsyncSession = Depends(get_db),
    cache: EntityCache = Depends(get_cache),
) -> CreditLedger:
    return CreditLedger(db, cache)


def get_earnings_service(
    db: AsyncSession = Depends(get_db),
    cache: EntityCache = Depends(get_cache),
) -> EarningsService:
    return EarningsService(db, cache)


def get_verdict_service(
    db: AsyncSession = Depends(get_db),
    cache: EntityCache = Depends(get_cache),
) -> VerdictService:
    ledger = CreditLedger(db, cache)
    earnings = EarningsService(db, cache)
    profiles = ProfileService(db, cache)
    return VerdictService(db, cache, ledger=ledger, earnings=earnings, profiles=profiles)


def get_billing_service(
    db: AsyncSession = Depends(get_db),
    cache: EntityCache = Depends(get_cache),
) -> BillingService:
    return BillingService(db, cache)


async def get_current_profile(
    identity: Identity = Depends(get_current_identity),
    profiles: ProfileService = Depends(get_profile_service),
) -> ProfileResponse:
    """Profile of the caller; PROFILE_NOT_FOUND if initialize was never called"""
    return await profiles.require_profile(identity.user_id)


async def require_judge(profile: ProfileResponse = Depends(get_current_profile)) -> ProfileResponse:
    if not profile.is_judge:
        raise NotAJudgeError()
    return profile


async def require_admin(profile: ProfileResponse = Depends(get_current_profile)) -> ProfileResponse:
    if not profile.is_admin:
        raise PermissionDeniedError("Admin access required")
    return profile
