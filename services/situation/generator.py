"""
services/situation/generator.py
Guidance generator: turns an allowed situation into
{response, verses, tags} using the OpenAI chat completions API.

The model is asked for JSON but is not trusted to return it; parse_guidance
falls back to the raw text plus any verse references it can find.
"""

import json
import logging
import re
from dataclasses import dataclass, field
from typing import List, Protocol

from openai import AsyncOpenAI

from shared.utils.errors import GuidanceGenerationError

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """You are a compassionate biblical scholar and spiritual guide. When someone presents a life situation to you, provide thoughtful, biblically-grounded guidance on what Jesus would do in that situation.

Your response should:
1. Be empathetic and understanding of the person's situation
2. Draw from Jesus's teachings, parables, and actions in the Gospels
3. Reference specific Bible verses that relate to the situation
4. Provide practical, actionable guidance rooted in Christian principles
5. Be loving and non-judgmental, as Jesus was

Format your response as JSON with the following structure:
{
  "response": "Your thoughtful response explaining what Jesus would do and why, with practical guidance",
  "verses": [
    "Book Chapter:Verse - The verse text",
    "Book Chapter:Verse - The verse text"
  ],
  "tags": ["tag1", "tag2", "tag3"]
}

Include 2-4 relevant Bible verses that support your guidance. Focus on the teachings of Jesus from the Gospels (Matthew, Mark, Luke, John), but you may also reference other relevant scripture.

For tags, include 2-4 lowercase single-word or short-phrase tags that categorize the situation. Examples: "forgiveness", "family", "workplace", "anger", "grief", "marriage", "parenting", "anxiety", "faith", "finances", "relationships", "honesty", "patience", "love", "conflict".

Remember: Jesus showed compassion to all, especially those who were struggling. He emphasized love, forgiveness, humility, and service to others. Guide others as He would - with patience, wisdom, and unconditional love."""

# "John 3:16", "1 Corinthians 13:4-7"
VERSE_PATTERN = re.compile(r"(\d?\s*[A-Za-z]+\s+\d+:\d+(?:-\d+)?)")
MAX_FALLBACK_VERSES = 4


@dataclass
class GuidanceResult:
    response: str
    verses: List[str] = field(default_factory=list)
    tags: List[str] = field(default_factory=list)


class GuidanceGenerator(Protocol):
    async def generate(self, situation_text: str) -> GuidanceResult: ...


def normalize_tags(tags) -> List[str]:
    """Lowercase, strip and de-duplicate while keeping first-seen order."""
    seen: List[str] = []
    for tag in tags or []:
        if not isinstance(tag, str):
            continue
        tag = tag.strip().lower()
        if tag and tag not in seen:
            seen.append(tag)
    return seen


def _strip_code_fence(content: str) -> str:
    content = content.strip()
    if content.startswith("```json"):
        content = content[7:]
    elif content.startswith("```"):
        content = content[3:]
    if content.endswith("```"):
        content = content[:-3]
    return content.strip()


def parse_guidance(content: str) -> GuidanceResult:
    """Parse model output into a GuidanceResult, tolerating non-JSON replies."""
    try:
        parsed = json.loads(_strip_code_fence(content))
        if not isinstance(parsed, dict) or not isinstance(parsed.get("response"), str):
            raise ValueError("missing response field")
        raw_verses = parsed.get("verses") or []
        if isinstance(raw_verses, str):
            raw_verses = [raw_verses]
        verses = [str(v).strip() for v in raw_verses if str(v).strip()]
        return GuidanceResult(
            response=parsed["response"].strip(),
            verses=verses,
            tags=normalize_tags(parsed.get("tags")),
        )
    except ValueError:
        # json.JSONDecodeError is a ValueError
        logger.warning("Guidance output was not valid JSON; using raw text")
        found = [m.strip() for m in VERSE_PATTERN.findall(content)]
        return GuidanceResult(
            response=content.strip(),
            verses=found[:MAX_FALLBACK_VERSES],
            tags=[],
        )


class OpenAIGuidanceGenerator:
    """GuidanceGenerator backed by OpenAI chat completions."""

    def __init__(self, client: AsyncOpenAI, model: str, max_tokens: int = 1024):
        self.client = client
        self.model = model
        self.max_tokens = max_tokens

    async def generate(self, situation_text: str) -> GuidanceResult:
        try:
            completion = await self.client.chat.completions.create(
                model=self.model,
                max_tokens=self.max_tokens,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {
                        "role": "user",
                        "content": (
                            f"Here is my situation: {situation_text}\n\n"
                            "What would Jesus do? Please provide guidance with relevant scripture references."
                        ),
                    },
                ],
            )
        except Exception as exc:
            raise GuidanceGenerationError(str(exc)) from exc

        content = completion.choices[0].message.content if completion.choices else None
        if not content or not content.strip():
            raise GuidanceGenerationError("No response from guidance model")
        return parse_guidance(content)
