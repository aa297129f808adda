"""
config/settings.py
Application settings loaded from environment variables.
Uses Pydantic BaseSettings for validation and type safety.
"""

from functools import lru_cache
from typing import List, Optional
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ── Application ──────────────────────────────────────────
    APP_NAME: str = "WWJD Guidance"
    APP_ENV: str = "development"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    SECRET_KEY: str

    # ── Server ───────────────────────────────────────────────
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    WORKERS: int = 2

    # ── Database ─────────────────────────────────────────────
    DATABASE_URL: str
    DATABASE_POOL_SIZE: int = 10
    DATABASE_MAX_OVERFLOW: int = 20
    DATABASE_POOL_TIMEOUT: int = 30

    # ── Redis ────────────────────────────────────────────────
    REDIS_URL: str = "redis://localhost:6379/0"

    # ── OAuth2 - Google ──────────────────────────────────────
    GOOGLE_CLIENT_ID: str = ""
    GOOGLE_CLIENT_SECRET: str = ""
    GOOGLE_REDIRECT_URI: str = "http://localhost:8000/auth/google/callback"

    # ── JWT ──────────────────────────────────────────────────
    JWT_SECRET_KEY: str
    JWT_ALGORITHM: str = "HS256"
    JWT_ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24 * 7

    # ── OpenAI (guidance + moderation) ───────────────────────
    OPENAI_API_KEY: str = ""
    OPENAI_GUIDANCE_MODEL: str = "gpt-4o"
    OPENAI_GUIDANCE_MAX_TOKENS: int = 1024
    OPENAI_MODERATION_MODEL: str = "omni-moderation-latest"
    OPENAI_TIMEOUT_SECONDS: float = 30.0

    # ── Moderation ───────────────────────────────────────────
    # True: a classifier outage lets content through (generator has its own
    # safeguards). False: submissions fail with 503 until it recovers.
    MODERATION_FAIL_OPEN: bool = True

    # ── Duplicate matching ───────────────────────────────────
    DUPLICATE_MIN_MATCHES: int = 2
    DUPLICATE_MIN_MATCH_RATIO: float = 0.4

    # ── Content limits ───────────────────────────────────────
    SITUATION_MAX_LENGTH: int = 400
    RATING_COMMENT_MAX_LENGTH: int = 500
    PRAYER_REQUEST_MAX_LENGTH: int = 500
    TOPIC_MAX_LENGTH: int = 50

    # ── Email ────────────────────────────────────────────────
    RESEND_API_KEY: str = ""
    EMAIL_FROM: str = "guidance@wwjd.app"
    EMAIL_FROM_NAME: str = "WWJD Guidance"
    DIGEST_MAX_ITEMS: int = 10

    # ── Frontend ─────────────────────────────────────────────
    FRONTEND_URL: str = "http://localhost:3000"
    ALLOWED_ORIGINS: str = "http://localhost:3000"

    # ── Celery ───────────────────────────────────────────────
    CELERY_BROKER_URL: str = "redis://localhost:6379/1"
    CELERY_RESULT_BACKEND: Optional[str] = None

    # ── Rate Limiting ────────────────────────────────────────
    RATE_LIMIT_UNAUTH_PER_MINUTE: int = 20

    @field_validator("DUPLICATE_MIN_MATCHES")
    @classmethod
    def validate_min_matches(cls, v: int) -> int:
        if v < 1:
            raise ValueError("DUPLICATE_MIN_MATCHES must be at least 1")
        return v

    @field_validator("DUPLICATE_MIN_MATCH_RATIO")
    @classmethod
    def validate_match_ratio(cls, v: float) -> float:
        if not 0.0 < v <= 1.0:
            raise ValueError("DUPLICATE_MIN_MATCH_RATIO must be in (0, 1]")
        return v

    @property
    def allowed_origins_list(self) -> List[str]:
        return [o.strip() for o in self.ALLOWED_ORIGINS.split(",")]

    @property
    def is_production(self) -> bool:
        return self.APP_ENV == "production"


@lru_cache()
def get_settings() -> Settings:
    """Cached settings instance."""
    return Settings()


settings = get_settings()
