"""
shared/schemas/schemas.py
All Pydantic v2 request/response schemas for the platform.
"""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from config.settings import settings
from shared.models.models import DigestFrequency


# ── Base ──────────────────────────────────────────────────────

class BaseSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True, use_enum_values=True)


class SituationSort(str, Enum):
    RECENT = "recent"
    TOP_RATED = "top_rated"
    MOST_RATED = "most_rated"


# ── User & Auth ───────────────────────────────────────────────

class UserResponse(BaseSchema):
    id: int
    email: EmailStr
    name: Optional[str]
    image: Optional[str]
    created_at: datetime


class AuthCallbackResponse(BaseSchema):
    access_token: str
    token_type: str = "bearer"
    expires_in: int  # seconds
    user: UserResponse


class UserSettingsResponse(BaseSchema):
    email_digest: bool
    digest_frequency: DigestFrequency
    notify_ratings: bool
    notify_prayers: bool


class UserSettingsUpdate(BaseSchema):
    """Partial update. A field left as None keeps its stored value."""
    email_digest: Optional[bool] = None
    digest_frequency: Optional[DigestFrequency] = None
    notify_ratings: Optional[bool] = None
    notify_prayers: Optional[bool] = None


class TopicFollowRequest(BaseSchema):
    topic: str = Field(..., min_length=1, max_length=settings.TOPIC_MAX_LENGTH)

    @field_validator("topic")
    @classmethod
    def normalize_topic(cls, v: str) -> str:
        v = v.strip().lower()
        if not v:
            raise ValueError("Topic is required")
        return v


class TopicsResponse(BaseSchema):
    topics: List[str]


class FollowResponse(BaseSchema):
    following: bool


class SavedStatusResponse(BaseSchema):
    saved: bool


# ── Situation ─────────────────────────────────────────────────

class SituationCreateRequest(BaseSchema):
    situation: str = Field(..., max_length=settings.SITUATION_MAX_LENGTH)

    @field_validator("situation", mode="before")
    @classmethod
    def validate_situation(cls, v):
        # Runs before max_length so surrounding whitespace does not count.
        if isinstance(v, str):
            v = v.strip()
            if not v:
                raise ValueError("Situation is required")
        return v


class MatchedFrom(BaseSchema):
    id: int
    situation: str


class SituationResponse(BaseSchema):
    id: Optional[int]
    situation: str
    response: str
    verses: List[str] = []
    tags: List[str] = []
    created_at: Optional[datetime] = None
    average_rating: float = 0.0
    rating_count: int = 0
    # Submission outcome flags
    moderated: bool = False
    category: Optional[str] = None
    matched_from: Optional[MatchedFrom] = None


class SavedSituationResponse(SituationResponse):
    saved_at: datetime


class SituationPage(BaseSchema):
    items: List[SituationResponse]
    total: int
    page: int
    page_size: int
    total_pages: int


# ── Rating ────────────────────────────────────────────────────

class RatingCreateRequest(BaseSchema):
    situation_id: int
    stars: int = Field(..., ge=1, le=5)
    comment: Optional[str] = None

    @field_validator("comment")
    @classmethod
    def truncate_comment(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = v.strip()
        return v[: settings.RATING_COMMENT_MAX_LENGTH] or None


class RatingResponse(BaseSchema):
    id: int
    situation_id: int
    stars: int
    comment: Optional[str]
    created_at: datetime


# ── Prayer Request ────────────────────────────────────────────

class PrayerRequestCreate(BaseSchema):
    request: str = Field(..., max_length=settings.PRAYER_REQUEST_MAX_LENGTH)
    situation_id: Optional[int] = None

    @field_validator("request", mode="before")
    @classmethod
    def validate_request(cls, v):
        if isinstance(v, str):
            v = v.strip()
            if not v:
                raise ValueError("Prayer request text is required")
        return v


class PrayerRequestCreated(BaseSchema):
    id: int
    success: bool = True


class PrayerRequestResponse(BaseSchema):
    id: int
    request: str
    prayer_count: int
    created_at: datetime
    situation_id: Optional[int] = None
    situation: Optional[str] = None


class PrayerRequestList(BaseSchema):
    requests: List[PrayerRequestResponse]


class PrayResponse(BaseSchema):
    success: bool = True
    prayer_count: int


# ── Generic ───────────────────────────────────────────────────

class MessageResponse(BaseSchema):
    message: str
    success: bool = True


class ErrorResponse(BaseSchema):
    detail: str
    request_id: Optional[str] = None
