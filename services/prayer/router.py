"""
services/prayer/router.py
Community prayer wall: list active requests, post one, pray for one.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from config.database import get_db
from services.situation.queries import situation_exists
from shared.middleware.auth import get_current_user
from shared.models.models import PrayerRequest, Situation, User
from shared.schemas.schemas import (
    PrayerRequestCreate,
    PrayerRequestCreated,
    PrayerRequestList,
    PrayerRequestResponse,
    PrayResponse,
)

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/prayer-requests", tags=["Prayer Requests"])


@router.get("", response_model=PrayerRequestList)
async def list_prayer_requests(
    limit: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
):
    """Public: active prayer requests, newest first, with linked situation text."""
    result = await db.execute(
        select(PrayerRequest, Situation.situation)
        .outerjoin(Situation, Situation.id == PrayerRequest.situation_id)
        .where(PrayerRequest.is_active.is_(True))
        .order_by(PrayerRequest.created_at.desc(), PrayerRequest.id.desc())
        .limit(limit)
    )
    return PrayerRequestList(
        requests=[
            PrayerRequestResponse(
                id=prayer.id,
                request=prayer.request,
                prayer_count=prayer.prayer_count,
                created_at=prayer.created_at,
                situation_id=prayer.situation_id,
                situation=situation_text,
            )
            for prayer, situation_text in result.all()
        ]
    )


@router.post("", response_model=PrayerRequestCreated, status_code=status.HTTP_201_CREATED)
async def create_prayer_request(
    data: PrayerRequestCreate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    if data.situation_id is not None and not await situation_exists(db, data.situation_id):
        raise HTTPException(status_code=404, detail="Situation not found")

    prayer = PrayerRequest(
        user_id=current_user.id,
        situation_id=data.situation_id,
        request=data.request,
        prayer_count=0,
        is_active=True,
    )
    db.add(prayer)
    await db.commit()
    await db.refresh(prayer)

    logger.info("Prayer request created id=%s user=%s", prayer.id, current_user.id)
    return PrayerRequestCreated(id=prayer.id)


@router.post("/{prayer_id}/pray", response_model=PrayResponse)
async def pray_for_request(
    prayer_id: int,
    db: AsyncSession = Depends(get_db),
):
    """
    Anonymous "I prayed" button. The increment happens in the database so
    concurrent presses never lose a count.
    """
    new_count = await db.scalar(
        update(PrayerRequest)
        .where(PrayerRequest.id == prayer_id)
        .values(prayer_count=PrayerRequest.prayer_count + 1)
        .returning(PrayerRequest.prayer_count)
        .execution_options(synchronize_session=False)
    )
    if new_count is None:
        raise HTTPException(status_code=404, detail="Prayer request not found")

    await db.commit()
    return PrayResponse(prayer_count=new_count)
