"""
services/rating/router.py
Star ratings for situations. Ratings are append-only; aggregates are
computed on read (see services/situation/queries.py).
"""

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from config.database import get_db
from services.situation.queries import list_ratings, situation_exists
from shared.models.models import Rating
from shared.schemas.schemas import RatingCreateRequest, RatingResponse

router = APIRouter(prefix="/ratings", tags=["Ratings"])


@router.post("", response_model=RatingResponse, status_code=status.HTTP_201_CREATED)
async def create_rating(
    data: RatingCreateRequest,
    db: AsyncSession = Depends(get_db),
):
    """
    Rate a situation 1-5 stars with an optional comment.
    Public, like the rest of the browsing surface; comments over the limit
    are truncated rather than rejected.
    """
    if not await situation_exists(db, data.situation_id):
        raise HTTPException(status_code=404, detail="Situation not found")

    rating = Rating(
        situation_id=data.situation_id,
        stars=data.stars,
        comment=data.comment,
    )
    db.add(rating)
    await db.commit()
    await db.refresh(rating)

    return RatingResponse.model_validate(rating)


@router.get("/situation/{situation_id}", response_model=list[RatingResponse])
async def get_situation_ratings(
    situation_id: int,
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=50),
    db: AsyncSession = Depends(get_db),
):
    """Public: ratings for a situation, newest first."""
    if not await situation_exists(db, situation_id):
        raise HTTPException(status_code=404, detail="Situation not found")
    return await list_ratings(db, situation_id, page=page, page_size=page_size)
