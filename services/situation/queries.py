"""
services/situation/queries.py
Read-side queries for situations: rating aggregates, filtered/sorted
pagination and single-row lookup.

average_rating and rating_count are computed from the ratings table on
every query; nothing is denormalized onto situations.
"""

import math
from typing import Optional

from sqlalchemy import String, cast, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from shared.models.models import Rating, SavedGuidance, Situation
from shared.schemas.schemas import (
    RatingResponse,
    SavedSituationResponse,
    SituationPage,
    SituationResponse,
    SituationSort,
)


def rating_stats_subquery():
    """Per-situation AVG(stars) and COUNT(*) over ratings."""
    return (
        select(
            Rating.situation_id.label("situation_id"),
            func.avg(Rating.stars).label("average_rating"),
            func.count(Rating.id).label("rating_count"),
        )
        .group_by(Rating.situation_id)
        .subquery("rating_stats")
    )


def situation_with_stats_query():
    """SELECT situation, avg, count ... LEFT JOIN rating_stats."""
    stats = rating_stats_subquery()
    average = func.coalesce(stats.c.average_rating, 0).label("average_rating")
    count = func.coalesce(stats.c.rating_count, 0).label("rating_count")
    query = (
        select(Situation, average, count)
        .outerjoin(stats, stats.c.situation_id == Situation.id)
    )
    return query, average, count


def to_situation_response(situation: Situation, average, count, **extra) -> SituationResponse:
    return SituationResponse(
        id=situation.id,
        situation=situation.situation,
        response=situation.response,
        verses=list(situation.verses or []),
        tags=list(situation.tags or []),
        created_at=situation.created_at,
        average_rating=float(average or 0),
        rating_count=int(count or 0),
        **extra,
    )


def search_filter(q: str):
    """
    Case-insensitive match on situation, response or serialized tags.
    % and _ in q are matched literally.
    """
    escaped = q.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    term = f"%{escaped}%"
    return or_(
        Situation.situation.ilike(term, escape="\\"),
        Situation.response.ilike(term, escape="\\"),
        cast(Situation.tags, String).ilike(term, escape="\\"),
    )


async def list_situations(
    db: AsyncSession,
    page: int = 1,
    page_size: int = 20,
    sort: SituationSort = SituationSort.RECENT,
    q: Optional[str] = None,
) -> SituationPage:
    """Filtered, sorted, offset-paginated situations with rating aggregates."""
    query, average, count = situation_with_stats_query()
    count_query = select(func.count(Situation.id))

    q = (q or "").strip()
    if q:
        query = query.where(search_filter(q))
        count_query = count_query.where(search_filter(q))

    total = await db.scalar(count_query) or 0

    # Recency (then id) always closes the ordering so pages are stable.
    recency = (Situation.created_at.desc(), Situation.id.desc())
    sort_map = {
        SituationSort.RECENT: recency,
        SituationSort.TOP_RATED: (average.desc(), count.desc(), *recency),
        SituationSort.MOST_RATED: (count.desc(), average.desc(), *recency),
    }
    query = query.order_by(*sort_map[SituationSort(sort)])
    query = query.offset((page - 1) * page_size).limit(page_size)

    result = await db.execute(query)
    items = [to_situation_response(row[0], row[1], row[2]) for row in result.all()]

    return SituationPage(
        items=items,
        total=total,
        page=page,
        page_size=page_size,
        total_pages=math.ceil(total / page_size) if total else 0,
    )


async def get_situation(db: AsyncSession, situation_id: int) -> Optional[SituationResponse]:
    query, _, _ = situation_with_stats_query()
    result = await db.execute(query.where(Situation.id == situation_id))
    row = result.first()
    if row is None:
        return None
    return to_situation_response(row[0], row[1], row[2])


async def situation_exists(db: AsyncSession, situation_id: int) -> bool:
    return await db.scalar(select(Situation.id).where(Situation.id == situation_id)) is not None


async def list_saved_situations(db: AsyncSession, user_id: int) -> list[SavedSituationResponse]:
    """A user's saved situations, most recently saved first."""
    query, _, _ = situation_with_stats_query()
    query = (
        query.add_columns(SavedGuidance.created_at.label("saved_at"))
        .join(SavedGuidance, SavedGuidance.situation_id == Situation.id)
        .where(SavedGuidance.user_id == user_id)
        .order_by(SavedGuidance.created_at.desc(), SavedGuidance.id.desc())
    )
    result = await db.execute(query)
    return [
        SavedSituationResponse(
            **to_situation_response(row[0], row[1], row[2]).model_dump(),
            saved_at=row[3],
        )
        for row in result.all()
    ]


async def list_ratings(
    db: AsyncSession,
    situation_id: int,
    page: int = 1,
    page_size: int = 20,
) -> list[RatingResponse]:
    result = await db.execute(
        select(Rating)
        .where(Rating.situation_id == situation_id)
        .order_by(Rating.created_at.desc(), Rating.id.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    return [RatingResponse.model_validate(r) for r in result.scalars()]
