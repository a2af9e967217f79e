"""Verdict request API endpoints"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Response, status
from fastapi import Query as QueryParam

from verdict.api.deps import get_current_profile, get_verdict_service
from verdict.db.models import RequestStatus
from verdict.schemas.profiles import ProfileResponse
from verdict.schemas.requests import (
    VerdictRequestCreate,
    VerdictRequestListResponse,
    VerdictRequestResponse,
    VerdictResponseSchema,
)
from verdict.services.verdicts import VerdictService

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("", response_model=VerdictRequestResponse, status_code=status.HTTP_201_CREATED)
async def create_request(
    payload: VerdictRequestCreate,
    profile: ProfileResponse = Depends(get_current_profile),
    service: VerdictService = Depends(get_verdict_service),
) -> VerdictRequestResponse:
    """Submit a new request; charges the tier's credits"""
    return await service.create_verdict_request(profile.id, payload)


@router.get("", response_model=VerdictRequestListResponse)
async def list_requests(
    limit: int = QueryParam(20, ge=1, le=100),
    offset: int = QueryParam(0, ge=0),
    status_filter: str | None = QueryParam(None, alias="status"),
    profile: ProfileResponse = Depends(get_current_profile),
    service: VerdictService = Depends(get_verdict_service),
) -> VerdictRequestListResponse:
    """List the caller's requests, newest first"""
    status_enum = None
    if status_filter:
        try:
            status_enum = RequestStatus(status_filter)
        except ValueError:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Invalid status: {status_filter}",
            )

    requests, total = await service.list_requests(profile.id, limit, offset, status_enum)
    return VerdictRequestListResponse(requests=requests, total=total, limit=limit, offset=offset)


@router.get("/{request_id}", response_model=VerdictRequestResponse)
async def get_request(
    request_id: UUID,
    profile: ProfileResponse = Depends(get_current_profile),
    service: VerdictService = Depends(get_verdict_service),
) -> VerdictRequestResponse:
    return await service.get_request(request_id, profile.id, profile.is_admin)


@router.get("/{request_id}/verdicts", response_model=list[VerdictResponseSchema])
async def list_request_verdicts(
    request_id: UUID,
    profile: ProfileResponse = Depends(get_current_profile),
    service: VerdictService = Depends(get_verdict_service),
) -> list[VerdictResponseSchema]:
    """Verdicts received on one of the caller's requests"""
    return await service.list_verdicts(request_id, profile.id, profile.is_admin)


@router.post("/{request_id}/cancel", response_model=VerdictRequestResponse)
async def cancel_request(
    request_id: UUID,
    profile: ProfileResponse = Depends(get_current_profile),
    service: VerdictService = Depends(get_verdict_service),
) -> VerdictRequestResponse:
    return await service.cancel_request(request_id, profile.id, profile.is_admin)


@router.delete("/{request_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_request(
    request_id: UUID,
    profile: ProfileResponse = Depends(get_current_profile),
    service: VerdictService = Depends(get_verdict_service),
) -> Response:
    """Soft delete; the request disappears from listings"""
    await service.delete_request(request_id, profile.id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
