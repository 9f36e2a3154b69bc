"""Notes analysis router."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends

from fitness_tracker.schemas.analysis import AnalysisRequest, AnalysisResponse
from fitness_tracker.services.analysis_service import AnalysisService, get_analysis_service
from fitness_tracker.services.auth_service import ensure_user_access, get_token_subject

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/ai-analysis", response_model=AnalysisResponse)
async def analyze_notes(
    request: AnalysisRequest,
    subject: Optional[str] = Depends(get_token_subject),
    service: AnalysisService = Depends(get_analysis_service),
) -> AnalysisResponse:
    """
    Relay workout notes to the analysis webhook.

    Subscription gating happens in the client before this is called.

    Raises:
        UpstreamError: 500 if the webhook fails
    """
    ensure_user_access(subject, request.user_id)
    logger.info(f"Analysis requested for user {request.user_id}")

    analysis = await service.analyze(request.notes)
    return AnalysisResponse(analysis=analysis)
