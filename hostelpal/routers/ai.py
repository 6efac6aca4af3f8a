"""Complaint analysis route."""

import logging

from fastapi import APIRouter, Depends, Request

from hostelpal.core.deps import get_current_user
from hostelpal.core.rate_limit import AI_LIMIT, limiter
from hostelpal.db.models import User
from hostelpal.schemas.ai import AnalyzeRequest, AnalyzeResponse
from hostelpal.services import classifier_service

router = APIRouter(prefix="/ai", tags=["ai"])
logger = logging.getLogger(__name__)


@router.post("/analyze", response_model=AnalyzeResponse)
@limiter.limit(AI_LIMIT)
async def analyze(
    request: Request,  # Required by limiter
    body: AnalyzeRequest,
    user: User = Depends(get_current_user),
):
    """Preview the category and priority the classifier would assign."""
    result = await classifier_service.analyze(body.title, body.description, body.category)
    return AnalyzeResponse(**result)
