"""
services/situation/dependencies.py
FastAPI dependencies for the external collaborators. Both wrap the
AsyncOpenAI client that main.lifespan stores on app.state.
"""

from fastapi import Request
from openai import AsyncOpenAI

from config.settings import settings
from services.situation.generator import GuidanceGenerator, OpenAIGuidanceGenerator
from services.situation.moderation import ModerationGate, OpenAIModerationClassifier


def build_openai_client() -> AsyncOpenAI:
    """Single client per process; no SDK-level retries."""
    return AsyncOpenAI(
        api_key=settings.OPENAI_API_KEY,
        timeout=settings.OPENAI_TIMEOUT_SECONDS,
        max_retries=0,
    )


def get_moderation_gate(request: Request) -> ModerationGate:
    classifier = OpenAIModerationClassifier(
        request.app.state.openai,
        model=settings.OPENAI_MODERATION_MODEL,
    )
    return ModerationGate(classifier, fail_open=settings.MODERATION_FAIL_OPEN)


def get_guidance_generator(request: Request) -> GuidanceGenerator:
    return OpenAIGuidanceGenerator(
        request.app.state.openai,
        model=settings.OPENAI_GUIDANCE_MODEL,
        max_tokens=settings.OPENAI_GUIDANCE_MAX_TOKENS,
    )
