"""
tests/conftest.py
Shared fixtures: in-memory SQLite store, HTTP client with the external
collaborators (OpenAI, Redis) replaced by fakes, and seeded users.
"""

import os

# Settings are read at import time; set them before importing the app.
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("JWT_SECRET_KEY", "test-jwt-secret")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("OPENAI_API_KEY", "sk-test")
os.environ.setdefault("RATE_LIMIT_UNAUTH_PER_MINUTE", "10000")

from datetime import datetime, timedelta, timezone
from typing import List, Optional
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.pool import StaticPool

from config.database import Database, get_db
from config.redis_client import get_redis
from main import app
from services.situation.dependencies import get_guidance_generator, get_moderation_gate
from services.situation.generator import GuidanceResult
from services.situation.moderation import ModerationGate, ModerationVerdict
from shared.models.models import Rating, Situation, User
from shared.utils.security import create_access_token
from shared.utils.errors import GuidanceGenerationError


# ── Fakes ─────────────────────────────────────────────────────

class FakeClassifier:
    """Moderation classifier that flags whatever the test tells it to."""

    def __init__(self):
        self.flagged: List[str] = []
        self.error: Optional[Exception] = None
        self.calls = 0

    async def classify(self, text: str) -> ModerationVerdict:
        self.calls += 1
        if self.error:
            raise self.error
        return ModerationVerdict(
            flagged=bool(self.flagged),
            categories={name: True for name in self.flagged},
        )


class FakeGenerator:
    """Guidance generator that returns a canned result and counts calls."""

    def __init__(self):
        self.result = GuidanceResult(
            response="Jesus would respond with patience and love.",
            verses=["Matthew 5:44", "Romans 12:18"],
            tags=["forgiveness", "family"],
        )
        self.fail = False
        self.calls = 0
        self.prompts: List[str] = []

    async def generate(self, situation_text: str) -> GuidanceResult:
        self.calls += 1
        self.prompts.append(situation_text)
        if self.fail:
            raise GuidanceGenerationError("model unavailable")
        return self.result


# ── Store ─────────────────────────────────────────────────────

@pytest_asyncio.fixture
async def database():
    database = Database(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    await database.connect()
    await database.create_all()
    yield database
    await database.disconnect()


@pytest_asyncio.fixture
async def db(database: Database):
    async with database.session() as session:
        yield session


# ── External collaborators ────────────────────────────────────

@pytest.fixture
def classifier() -> FakeClassifier:
    return FakeClassifier()


@pytest.fixture
def generator() -> FakeGenerator:
    return FakeGenerator()


@pytest.fixture
def redis() -> AsyncMock:
    mock = AsyncMock()
    mock.exists.return_value = 0
    return mock


# ── HTTP client ───────────────────────────────────────────────

@pytest_asyncio.fixture
async def client(
    database: Database,
    db: AsyncSession,
    classifier: FakeClassifier,
    generator: FakeGenerator,
    redis: AsyncMock,
):
    async def _get_db():
        yield db

    app.state.database = database
    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_redis] = lambda: redis
    app.dependency_overrides[get_moderation_gate] = lambda: ModerationGate(classifier, fail_open=True)
    app.dependency_overrides[get_guidance_generator] = lambda: generator

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# ── Seed data ─────────────────────────────────────────────────

@pytest_asyncio.fixture
async def user(db: AsyncSession) -> User:
    u = User(email="grace@example.com", name="Grace")
    db.add(u)
    await db.commit()
    await db.refresh(u)
    return u


@pytest_asyncio.fixture
async def other_user(db: AsyncSession) -> User:
    u = User(email="paul@example.com", name="Paul")
    db.add(u)
    await db.commit()
    await db.refresh(u)
    return u


async def make_situation(
    db: AsyncSession,
    text: str,
    *,
    response: str = "Respond with grace.",
    tags: Optional[List[str]] = None,
    verses: Optional[List[str]] = None,
    age: timedelta = timedelta(0),
    stars: Optional[List[int]] = None,
) -> Situation:
    """Insert a situation created `age` ago, with optional ratings."""
    situation = Situation(
        situation=text,
        response=response,
        verses=verses or [],
        tags=tags or [],
        created_at=datetime.now(timezone.utc) - age,
    )
    db.add(situation)
    await db.flush()
    for s in stars or []:
        db.add(Rating(situation_id=situation.id, stars=s))
    await db.commit()
    await db.refresh(situation)
    return situation


def auth_headers(user: User) -> dict:
    token, _ = create_access_token(user_id=user.id, email=user.email)
    return {"Authorization": f"Bearer {token}"}
