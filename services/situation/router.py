"""
services/situation/router.py
Submit, browse and fetch situations.
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from config.database import get_db
from services.situation.dependencies import get_guidance_generator, get_moderation_gate
from services.situation.generator import GuidanceGenerator
from services.situation.moderation import ModerationGate
from services.situation.queries import get_situation, list_situations
from services.situation.submission import SubmissionOutcome, submit_situation
from shared.schemas.schemas import (
    SituationCreateRequest,
    SituationPage,
    SituationResponse,
    SituationSort,
)

router = APIRouter(prefix="/situations", tags=["Situations"])


@router.post("", response_model=SituationResponse)
async def create_situation(
    data: SituationCreateRequest,
    response: Response,
    db: AsyncSession = Depends(get_db),
    gate: ModerationGate = Depends(get_moderation_gate),
    generator: GuidanceGenerator = Depends(get_guidance_generator),
):
    """
    Submit a situation and get guidance for it.
    - 200 with moderated=true when the text is blocked (nothing stored)
    - 200 with matched_from set when an existing question is reused
    - 201 with a new id when fresh guidance was generated and stored
    """
    result = await submit_situation(db, data.situation, gate, generator)
    if result.outcome == SubmissionOutcome.PERSISTED:
        response.status_code = status.HTTP_201_CREATED
    return result.situation


@router.get("", response_model=SituationPage)
async def browse_situations(
    q: Optional[str] = Query(None, max_length=200, description="Text search on situation, response and tags"),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=50),
    page_size_camel: Optional[int] = Query(None, ge=1, le=50, alias="pageSize"),
    sort: SituationSort = Query(SituationSort.RECENT),
    db: AsyncSession = Depends(get_db),
):
    """Public: paginated community guidance. Accepts pageSize or page_size."""
    if page_size_camel is not None:
        page_size = page_size_camel
    return await list_situations(db, page=page, page_size=page_size, sort=sort, q=q)


@router.get("/{situation_id}", response_model=SituationResponse)
async def get_situation_by_id(
    situation_id: int,
    db: AsyncSession = Depends(get_db),
):
    situation = await get_situation(db, situation_id)
    if not situation:
        raise HTTPException(status_code=404, detail="Situation not found")
    return situation
