"""
shared/models/models.py
All SQLAlchemy ORM models for the guidance platform.
Integer primary keys; JSON columns map to JSONB on PostgreSQL.
"""

from datetime import datetime
from enum import Enum as PyEnum
from typing import List, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    SmallInteger,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from config.database import Base

JSONList = JSON().with_variant(JSONB(), "postgresql")


# ── Enumerations ──────────────────────────────────────────────

class DigestFrequency(str, PyEnum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


# ── Mixins ────────────────────────────────────────────────────

class CreatedAtMixin:
    """Adds a server-stamped created_at to any model."""
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )


# ── Models ────────────────────────────────────────────────────

class User(CreatedAtMixin, Base):
    """Community member. Upserted by email on every sign-in."""
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    image: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)
    last_login: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    # Notification preferences
    email_digest: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    digest_frequency: Mapped[DigestFrequency] = mapped_column(
        Enum(DigestFrequency, values_callable=lambda e: [m.value for m in e]),
        default=DigestFrequency.WEEKLY,
        nullable=False,
    )
    notify_ratings: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    notify_prayers: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    saved_guidance: Mapped[List["SavedGuidance"]] = relationship(
        back_populates="user", cascade="all, delete-orphan"
    )
    followed_topics: Mapped[List["FollowedTopic"]] = relationship(
        back_populates="user", cascade="all, delete-orphan"
    )


class Situation(CreatedAtMixin, Base):
    """
    A submitted life situation plus its generated guidance.
    Rating aggregates are never stored here; see services/situation/queries.py.
    """
    __tablename__ = "situations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    situation: Mapped[str] = mapped_column(Text, nullable=False)
    response: Mapped[str] = mapped_column(Text, nullable=False)
    verses: Mapped[list] = mapped_column(JSONList, nullable=False, default=list)
    tags: Mapped[list] = mapped_column(JSONList, nullable=False, default=list)

    ratings: Mapped[List["Rating"]] = relationship(back_populates="situation")

    __table_args__ = (Index("ix_situations_created_at", "created_at"),)


class Rating(CreatedAtMixin, Base):
    """Append-only star rating for a situation."""
    __tablename__ = "ratings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    situation_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("situations.id"), nullable=False
    )
    stars: Mapped[int] = mapped_column(SmallInteger, nullable=False)
    comment: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    situation: Mapped["Situation"] = relationship(back_populates="ratings")

    __table_args__ = (
        CheckConstraint("stars >= 1 AND stars <= 5", name="ck_rating_stars_range"),
        Index("ix_ratings_situation_id", "situation_id"),
    )


class SavedGuidance(CreatedAtMixin, Base):
    """User's saved situations. Unique per (user, situation)."""
    __tablename__ = "saved_guidance"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    situation_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("situations.id", ondelete="CASCADE"), nullable=False
    )

    user: Mapped["User"] = relationship(back_populates="saved_guidance")

    __table_args__ = (
        UniqueConstraint("user_id", "situation_id", name="uq_saved_guidance"),
    )


class FollowedTopic(CreatedAtMixin, Base):
    """Topic tag a user follows. Topics are stored lowercased."""
    __tablename__ = "followed_topics"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    topic: Mapped[str] = mapped_column(String(50), nullable=False)

    user: Mapped["User"] = relationship(back_populates="followed_topics")

    __table_args__ = (
        UniqueConstraint("user_id", "topic", name="uq_followed_topic"),
    )


class PrayerRequest(CreatedAtMixin, Base):
    """Prayer wall entry. prayer_count is bumped anonymously."""
    __tablename__ = "prayer_requests"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    situation_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("situations.id", ondelete="SET NULL"), nullable=True
    )
    request: Mapped[str] = mapped_column(Text, nullable=False)
    prayer_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    situation: Mapped[Optional["Situation"]] = relationship()

    __table_args__ = (
        Index("ix_prayer_requests_active_created", "is_active", "created_at"),
    )
