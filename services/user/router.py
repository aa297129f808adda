"""
services/user/router.py
User profile, saved guidance, followed topics and notification settings.
"""

from fastapi import APIRouter, Depends, HTTPException, Path
from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from config.database import get_db, insert_ignore_conflicts
from config.settings import settings
from services.situation.queries import list_saved_situations, situation_exists
from shared.middleware.auth import get_current_user
from shared.models.models import DigestFrequency, FollowedTopic, SavedGuidance, User
from shared.schemas.schemas import (
    FollowResponse,
    SavedSituationResponse,
    SavedStatusResponse,
    TopicFollowRequest,
    TopicsResponse,
    UserResponse,
    UserSettingsResponse,
    UserSettingsUpdate,
)

router = APIRouter(prefix="/users", tags=["Users"])


@router.get("/me", response_model=UserResponse)
async def get_me(current_user: User = Depends(get_current_user)):
    """Return the currently authenticated user's profile."""
    return UserResponse.model_validate(current_user)


# ── Saved Guidance ─────────────────────────────────────────────────────────────

@router.get("/me/saved", response_model=list[SavedSituationResponse])
async def get_saved_guidance(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Situations saved by the current user, most recently saved first."""
    return await list_saved_situations(db, current_user.id)


@router.get("/me/saved/{situation_id}", response_model=SavedStatusResponse)
async def is_guidance_saved(
    situation_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    saved = await db.scalar(
        select(SavedGuidance.id).where(
            SavedGuidance.user_id == current_user.id,
            SavedGuidance.situation_id == situation_id,
        )
    )
    return SavedStatusResponse(saved=saved is not None)


@router.post("/me/saved/{situation_id}", response_model=SavedStatusResponse)
async def save_guidance(
    situation_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Save a situation. Saving twice is not an error."""
    if not await situation_exists(db, situation_id):
        raise HTTPException(status_code=404, detail="Situation not found")

    await db.execute(
        insert_ignore_conflicts(
            db, SavedGuidance, user_id=current_user.id, situation_id=situation_id
        )
    )
    await db.commit()
    return SavedStatusResponse(saved=True)


@router.delete("/me/saved/{situation_id}", response_model=SavedStatusResponse)
async def unsave_guidance(
    situation_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Remove a saved situation. Removing something never saved is a no-op."""
    await db.execute(
        delete(SavedGuidance).where(
            SavedGuidance.user_id == current_user.id,
            SavedGuidance.situation_id == situation_id,
        )
    )
    await db.commit()
    return SavedStatusResponse(saved=False)


# ── Followed Topics ────────────────────────────────────────────────────────────

@router.get("/me/topics", response_model=TopicsResponse)
async def get_followed_topics(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    result = await db.execute(
        select(FollowedTopic.topic)
        .where(FollowedTopic.user_id == current_user.id)
        .order_by(FollowedTopic.created_at.desc(), FollowedTopic.id.desc())
    )
    return TopicsResponse(topics=list(result.scalars()))


@router.post("/me/topics", response_model=FollowResponse)
async def follow_topic(
    data: TopicFollowRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Follow a topic tag. Topics are case-insensitive; following twice is a no-op."""
    await db.execute(
        insert_ignore_conflicts(db, FollowedTopic, user_id=current_user.id, topic=data.topic)
    )
    await db.commit()
    return FollowResponse(following=True)


@router.delete("/me/topics/{topic}", response_model=FollowResponse)
async def unfollow_topic(
    topic: str = Path(..., min_length=1, max_length=settings.TOPIC_MAX_LENGTH),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await db.execute(
        delete(FollowedTopic).where(
            FollowedTopic.user_id == current_user.id,
            FollowedTopic.topic == topic.strip().lower(),
        )
    )
    await db.commit()
    return FollowResponse(following=False)


# ── Notification Settings ──────────────────────────────────────────────────────

@router.get("/me/settings", response_model=UserSettingsResponse)
async def get_settings(current_user: User = Depends(get_current_user)):
    return UserSettingsResponse.model_validate(current_user)


@router.put("/me/settings", response_model=UserSettingsResponse)
async def update_settings(
    data: UserSettingsUpdate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """
    Partial update of the four notification fields in one UPDATE.
    A field sent as null (or omitted) keeps its current value.
    """
    await db.execute(
        update(User)
        .where(User.id == current_user.id)
        .values(
            email_digest=(
                data.email_digest if data.email_digest is not None else User.email_digest
            ),
            digest_frequency=(
                DigestFrequency(data.digest_frequency)
                if data.digest_frequency is not None
                else User.digest_frequency
            ),
            notify_ratings=(
                data.notify_ratings if data.notify_ratings is not None else User.notify_ratings
            ),
            notify_prayers=(
                data.notify_prayers if data.notify_prayers is not None else User.notify_prayers
            ),
        )
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    await db.refresh(current_user)
    return UserSettingsResponse.model_validate(current_user)
