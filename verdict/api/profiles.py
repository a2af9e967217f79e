"""Account initialization and profile endpoints"""

import logging

from fastapi import APIRouter, Depends

from verdict.api.deps import get_current_profile, get_profile_service
from verdict.auth import get_current_identity
from verdict.schemas.profiles import InitializeUserResponse, ProfileResponse, ProfileUpdate
from verdict.services.profiles import Identity, ProfileService

logger = logging.getLogger(__name__)

auth_router = APIRouter()
router = APIRouter()


@auth_router.post("/initialize", response_model=InitializeUserResponse)
async def initialize_user(
    identity: Identity = Depends(get_current_identity),
    profiles: ProfileService = Depends(get_profile_service),
) -> InitializeUserResponse:
    """Create the caller's profile on first login; safe to call again"""
    result = await profiles.initialize_user(identity)
    return InitializeUserResponse(is_new_user=result.is_new_user, profile=result.profile)


@router.get("/me", response_model=ProfileResponse)
async def get_me(profile: ProfileResponse = Depends(get_current_profile)) -> ProfileResponse:
    return profile


@router.patch("/me", response_model=ProfileResponse)
async def update_me(
    changes: ProfileUpdate,
    profile: ProfileResponse = Depends(get_current_profile),
    profiles: ProfileService = Depends(get_profile_service),
) -> ProfileResponse:
    return await profiles.update_profile(profile.id, changes.model_dump(exclude_unset=True))
