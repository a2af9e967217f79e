"""Profile lifecycle: account initialization and time-bounded profile lookups"""

import asyncio
import logging
from dataclasses import dataclass

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from verdict.config import settings
from verdict.db.models import CreditTransactionType, Profile
from verdict.db.repositories import DuplicateProfile, ProfileRepository
from verdict.errors import ProfileNotFoundError, ServiceUnavailableError, StorageError
from verdict.schemas.profiles import ProfileResponse
from verdict.services.cache import CacheKey, EntityCache

logger = logging.getLogger(__name__)

SIGNUP_BONUS_REASON = "Signup bonus"
EDITABLE_FIELDS = frozenset({"display_name", "is_judge"})


@dataclass(frozen=True)
class Identity:
    """Authenticated caller as asserted by the identity provider"""
    user_id: str
    email: str | None = None


@dataclass(frozen=True)
class InitializeResult:
    is_new_user: bool
    profile: ProfileResponse


def display_name_from_email(email: str | None) -> str:
    if email and "@" in email:
        local = email.split("@", 1)[0].strip()
        if local:
            return local
    return "User"


class ProfileService:
    """Creates profiles on first login and serves cached profile snapshots"""

    def __init__(
        self,
        db: AsyncSession,
        cache: EntityCache | None = None,
        lookup_timeout: float | None = None,
    ):
        self.db = db
        self.cache = cache
        self.lookup_timeout = lookup_timeout or settings.profile_lookup_timeout_seconds
        self.profiles = ProfileRepository(db)

    async def initialize_user(self, identity: Identity) -> InitializeResult:
        """Create the profile for a freshly authenticated identity, once.

        This is the only code path that creates profiles. A concurrent call for
        the same identity loses on the primary key and returns the winner's row.
        """
        user_id = identity.user_id

        existing = await self._lookup(user_id)
        if existing is not None:
            return InitializeResult(is_new_user=False, profile=existing)

        signup_credits = settings.signup_credits
        profile = Profile(
            id=user_id,
            email=identity.email,
            display_name=display_name_from_email(identity.email),
            credits=signup_credits,
            is_judge=True,
            is_admin=False,
        )

        try:
            await self.profiles.insert(profile)
            if signup_credits > 0:
                await self.profiles.record_transaction(
                    user_id=user_id,
                    transaction_type=CreditTransactionType.SIGNUP_BONUS,
                    delta=signup_credits,
                    balance_after=signup_credits,
                    reason=SIGNUP_BONUS_REASON,
                )
            await self.db.commit()
        except DuplicateProfile:
            await self.db.rollback()
            logger.info(f"Profile {user_id} was created concurrently, using existing row")
            existing = await self._lookup(user_id)
            if existing is None:
                raise StorageError("Profile creation conflicted but no profile was found")
            return InitializeResult(is_new_user=False, profile=existing)
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Failed to create profile {user_id}: {e}", exc_info=True)
            raise StorageError("Failed to create profile") from e

        snapshot = ProfileResponse.model_validate(profile)
        self._store(snapshot)
        logger.info(f"Created profile {user_id} with {signup_credits} signup credits")
        return InitializeResult(is_new_user=True, profile=snapshot)

    async def get_profile(self, user_id: str) -> ProfileResponse | None:
        """Profile snapshot or None; never creates"""
        if self.cache is not None:
            cached = self.cache.get(CacheKey.profile(user_id))
            if cached is not None:
                return cached

        snapshot = await self._lookup(user_id)
        if snapshot is not None:
            self._store(snapshot)
        return snapshot

    async def require_profile(self, user_id: str) -> ProfileResponse:
        profile = await self.get_profile(user_id)
        if profile is None:
            raise ProfileNotFoundError()
        return profile

    async def update_profile(self, user_id: str, changes: dict) -> ProfileResponse:
        values = {k: v for k, v in changes.items() if k in EDITABLE_FIELDS and v is not None}
        if not values:
            return await self.require_profile(user_id)

        try:
            profile = await self.profiles.update_fields(user_id, **values)
            if profile is None:
                await self.db.rollback()
                raise ProfileNotFoundError()
            snapshot = ProfileResponse.model_validate(profile)
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Failed to update profile {user_id}: {e}", exc_info=True)
            raise StorageError("Failed to update profile") from e

        self._store(snapshot)
        logger.info(f"Updated profile {user_id}: {sorted(values)}")
        return snapshot

    async def _lookup(self, user_id: str) -> ProfileResponse | None:
        try:
            profile = await asyncio.wait_for(self.profiles.get(user_id), timeout=self.lookup_timeout)
        except asyncio.TimeoutError as e:
            logger.error(f"Profile lookup for {user_id} timed out after {self.lookup_timeout}s")
            raise ServiceUnavailableError() from e
        except SQLAlchemyError as e:
            logger.error(f"Profile lookup for {user_id} failed: {e}", exc_info=True)
            raise ServiceUnavailableError() from e

        if profile is None:
            return None
        return ProfileResponse.model_validate(profile)

    def _store(self, snapshot: ProfileResponse) -> None:
        if self.cache is not None:
            self.cache.set(CacheKey.profile(snapshot.id), snapshot)
