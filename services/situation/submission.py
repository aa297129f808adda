"""
services/situation/submission.py
New-situation flow:

    Received -> Moderating -> Blocked
                           -> Matching -> MatchedExisting
                                       -> Generating -> Persisted

Input validation (Received) happens in SituationCreateRequest, before any
of this runs. Nothing here retries: a failed generator call surfaces to the
caller and no row is written.
"""

import logging
from dataclasses import dataclass
from enum import Enum

from sqlalchemy.ext.asyncio import AsyncSession

from services.situation.generator import GuidanceGenerator
from services.situation.matcher import find_similar
from services.situation.moderation import ModerationGate
from services.situation.queries import get_situation
from shared.models.models import Situation
from shared.schemas.schemas import MatchedFrom, SituationResponse

logger = logging.getLogger(__name__)


class SubmissionOutcome(str, Enum):
    BLOCKED = "blocked"
    MATCHED_EXISTING = "matched_existing"
    PERSISTED = "persisted"


@dataclass
class SubmissionResult:
    outcome: SubmissionOutcome
    situation: SituationResponse


async def submit_situation(
    db: AsyncSession,
    text: str,
    gate: ModerationGate,
    generator: GuidanceGenerator,
) -> SubmissionResult:
    # Moderating
    moderation = await gate.moderate(text)
    if not moderation.allowed:
        return SubmissionResult(
            outcome=SubmissionOutcome.BLOCKED,
            situation=SituationResponse(
                id=None,
                situation=text,
                response=moderation.guidance,
                verses=[],
                tags=[],
                moderated=True,
                category=moderation.category,
            ),
        )

    # Matching
    existing = await find_similar(db, text)
    if existing is not None:
        logger.info("Submission matched existing situation id=%s", existing.id)
        matched = await get_situation(db, existing.id)
        matched.matched_from = MatchedFrom(id=existing.id, situation=existing.situation)
        return SubmissionResult(outcome=SubmissionOutcome.MATCHED_EXISTING, situation=matched)

    # Generating
    guidance = await generator.generate(text)

    # Persisted
    situation = Situation(
        situation=text,
        response=guidance.response,
        verses=guidance.verses,
        tags=guidance.tags,
    )
    db.add(situation)
    await db.commit()
    await db.refresh(situation)
    logger.info("Situation persisted id=%s tags=%s", situation.id, situation.tags)

    return SubmissionResult(
        outcome=SubmissionOutcome.PERSISTED,
        situation=SituationResponse(
            id=situation.id,
            situation=situation.situation,
            response=situation.response,
            verses=list(situation.verses),
            tags=list(situation.tags),
            created_at=situation.created_at,
        ),
    )
