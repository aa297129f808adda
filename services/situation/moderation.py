"""
services/situation/moderation.py
Moderation gate for submitted situations.

Classification is delegated to the OpenAI moderation endpoint. When text is
flagged, the most severe flagged category picks one of the static, human
written responses below. User text never flows into these messages.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Protocol

from openai import AsyncOpenAI

from shared.utils.errors import ModerationUnavailable

logger = logging.getLogger(__name__)


# ── Canned responses ──────────────────────────────────────────

_CRISIS_LINES = """**National Suicide Prevention Lifeline**: 988 (call or text)
**Crisis Text Line**: Text HOME to 741741"""

GUIDANCE_RESPONSES: Dict[str, str] = {
    "self-harm": f"""I sense you may be going through a very difficult time. Please know that you are deeply loved and valued. If you're having thoughts of harming yourself, please reach out for help:

{_CRISIS_LINES}

Jesus said, "Come to me, all you who are weary and burdened, and I will give you rest" (Matthew 11:28). You don't have to face this alone. Please speak to a trusted counselor, pastor, or mental health professional.""",

    "self-harm/intent": f"""I sense you may be going through a very difficult time. Please know that you are deeply loved and valued. If you're having thoughts of harming yourself, please reach out for help immediately:

{_CRISIS_LINES}
**Emergency**: 911

Jesus said, "Come to me, all you who are weary and burdened, and I will give you rest" (Matthew 11:28). You don't have to face this alone. Please reach out now.""",

    "self-harm/instructions": f"""I cannot provide guidance on this topic. If you're struggling, please reach out for help:

{_CRISIS_LINES}

You are loved and valued. Please speak to a professional who can help.""",

    "violence": """I hear that you may be experiencing strong emotions. Jesus calls us to love even our enemies and to seek peace.

If you're feeling overwhelmed by anger or thoughts of harming others, please reach out to a counselor or mental health professional who can help you process these feelings safely.

"Blessed are the peacemakers, for they will be called children of God." (Matthew 5:9)""",

    "violence/graphic": """This question involves content that this platform cannot address. Jesus calls us to peace and love.

If you're struggling with difficult thoughts, please consider speaking with a mental health professional or pastor.

"Blessed are the peacemakers, for they will be called children of God." (Matthew 5:9)""",

    "hate": """Jesus calls us to love all people, including those who are different from us.

"A new command I give you: Love one another. As I have loved you, so you must love one another." (John 13:34)

If you're struggling with feelings of anger or resentment, consider speaking with a pastor or counselor who can help you work through these emotions.""",

    "hate/threatening": """This platform cannot provide guidance on this topic. Jesus calls us to love, not harm.

"But I tell you, love your enemies and pray for those who persecute you." (Matthew 5:44)

If you're experiencing intense emotions, please reach out to a mental health professional.""",

    "sexual": """This question involves content that may not be appropriate for this platform. For guidance on relationships and intimacy, please consider speaking with a trusted pastor or Christian counselor who can provide personalized, biblically-grounded advice.""",

    "sexual/minors": """This question involves content that this platform cannot address. If you need guidance, please speak with appropriate authorities or a licensed professional.""",

    "harassment": """Jesus calls us to treat others with dignity and respect.

"Do to others as you would have them do to you." (Luke 6:31)

If you're experiencing conflict with someone, consider speaking with a pastor or counselor about healthy ways to address the situation.""",

    "harassment/threatening": """This platform cannot provide guidance that could lead to harm. Jesus calls us to peace.

"If it is possible, as far as it depends on you, live at peace with everyone." (Romans 12:18)

Please consider speaking with a counselor if you're struggling with difficult emotions.""",

    "illicit": """This platform cannot provide guidance on illegal activities. Jesus calls us to live righteously and respect the law.

"Let everyone be subject to the governing authorities." (Romans 13:1)

If you're facing a difficult situation, please consider speaking with a pastor, counselor, or appropriate professional.""",

    "illicit/violent": """This platform cannot provide guidance on this topic. Please seek appropriate professional help if you're struggling.""",
}

FALLBACK_GUIDANCE = """This question involves content that this platform may not be best equipped to address. Please consider speaking with a trusted pastor, counselor, or appropriate professional for guidance on this matter.

"Trust in the Lord with all your heart and lean not on your own understanding." (Proverbs 3:5)"""

# Most severe first
CATEGORY_PRIORITY: List[str] = [
    "sexual/minors",
    "self-harm/intent",
    "self-harm/instructions",
    "illicit/violent",
    "violence/graphic",
    "hate/threatening",
    "harassment/threatening",
    "self-harm",
    "violence",
    "sexual",
    "hate",
    "harassment",
    "illicit",
]


# ── Types ─────────────────────────────────────────────────────

@dataclass
class ModerationVerdict:
    """Raw classifier output."""
    flagged: bool
    categories: Dict[str, bool] = field(default_factory=dict)


@dataclass
class ModerationResult:
    allowed: bool
    category: Optional[str] = None
    guidance: Optional[str] = None
    flagged_categories: List[str] = field(default_factory=list)


class ModerationClassifier(Protocol):
    async def classify(self, text: str) -> ModerationVerdict: ...


class OpenAIModerationClassifier:
    """ModerationClassifier backed by the OpenAI moderation endpoint."""

    def __init__(self, client: AsyncOpenAI, model: str):
        self.client = client
        self.model = model

    async def classify(self, text: str) -> ModerationVerdict:
        response = await self.client.moderations.create(model=self.model, input=text)
        result = response.results[0]
        # by_alias keeps the slash names, e.g. "self-harm/intent"
        categories = result.categories.model_dump(by_alias=True)
        return ModerationVerdict(
            flagged=bool(result.flagged),
            categories={name: bool(hit) for name, hit in categories.items() if hit is not None},
        )


# ── Category selection ────────────────────────────────────────

def select_primary_category(flagged: List[str]) -> str:
    """Most severe flagged category; first flagged one if none is ranked."""
    flagged_set = set(flagged)
    for category in CATEGORY_PRIORITY:
        if category in flagged_set:
            return category
    return flagged[0]


def guidance_for(category: str) -> str:
    """Exact category, then parent category, then the generic fallback."""
    guidance = GUIDANCE_RESPONSES.get(category)
    if guidance is None:
        guidance = GUIDANCE_RESPONSES.get(category.split("/", 1)[0])
    return guidance or FALLBACK_GUIDANCE


# ── Gate ──────────────────────────────────────────────────────

class ModerationGate:
    """
    Decides whether a submission may proceed to guidance generation.

    fail_open controls what a classifier error means: True lets the text
    through (the error is logged), False raises ModerationUnavailable.
    """

    def __init__(self, classifier: ModerationClassifier, fail_open: bool = True):
        self.classifier = classifier
        self.fail_open = fail_open

    async def moderate(self, text: str) -> ModerationResult:
        try:
            verdict = await self.classifier.classify(text)
        except Exception as exc:
            logger.exception("Moderation classifier failed (fail_open=%s)", self.fail_open)
            if self.fail_open:
                return ModerationResult(allowed=True)
            raise ModerationUnavailable(str(exc)) from exc

        if not verdict.flagged:
            return ModerationResult(allowed=True)

        flagged = [name for name, hit in verdict.categories.items() if hit]
        if not flagged:
            # Flagged without any category set; treat as the generic case.
            return ModerationResult(allowed=False, guidance=FALLBACK_GUIDANCE)

        category = select_primary_category(flagged)
        logger.info("Submission blocked by moderation: category=%s", category)
        return ModerationResult(
            allowed=False,
            category=category,
            guidance=guidance_for(category),
            flagged_categories=flagged,
        )
