"""Judge API endpoints: submitting verdicts, the work queue and earnings"""

import logging

from fastapi import APIRouter, Depends, status
from fastapi import Query as QueryParam

from verdict.api.deps import get_earnings_service, get_verdict_service, require_judge
from verdict.schemas.earnings import EarningsSummary, JudgeEarningListResponse, JudgeEarningResponse
from verdict.schemas.profiles import ProfileResponse
from verdict.schemas.requests import JudgeQueueResponse, SubmitVerdictResponse, VerdictCreate
from verdict.services.earnings import EarningsService
from verdict.services.pricing import cents_to_dollars
from verdict.services.verdicts import VerdictService

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/verdicts", response_model=SubmitVerdictResponse, status_code=status.HTTP_201_CREATED)
async def submit_verdict(
    payload: VerdictCreate,
    judge: ProfileResponse = Depends(require_judge),
    service: VerdictService = Depends(get_verdict_service),
) -> SubmitVerdictResponse:
    result = await service.add_judge_verdict(payload.request_id, judge.id, payload)
    return SubmitVerdictResponse(
        request=result.request,
        verdict=result.verdict,
        earning_amount=cents_to_dollars(result.earning.amount_cents),
    )


@router.get("/queue", response_model=JudgeQueueResponse)
async def judge_queue(
    limit: int = QueryParam(20, ge=1, le=100),
    judge: ProfileResponse = Depends(require_judge),
    service: VerdictService = Depends(get_verdict_service),
) -> JudgeQueueResponse:
    """Requests the judge can still respond to, oldest first"""
    requests = await service.list_available_for_judge(judge.id, limit)
    return JudgeQueueResponse(requests=requests, count=len(requests))


@router.get("/earnings/summary", response_model=EarningsSummary)
async def earnings_summary(
    judge: ProfileResponse = Depends(require_judge),
    service: EarningsService = Depends(get_earnings_service),
) -> EarningsSummary:
    return await service.get_summary(judge.id)


@router.get("/earnings", response_model=JudgeEarningListResponse)
async def list_earnings(
    limit: int = QueryParam(50, ge=1, le=200),
    judge: ProfileResponse = Depends(require_judge),
    service: EarningsService = Depends(get_earnings_service),
) -> JudgeEarningListResponse:
    earnings = await service.list_earnings(judge.id, limit)
    return JudgeEarningListResponse(
        earnings=[JudgeEarningResponse.model_validate(e) for e in earnings],
        count=len(earnings),
    )
