"""
services/situation/matcher.py
Duplicate question matcher.

Before paying for a generator call, look for a stored situation that shares
enough keywords with the new question and reuse it ("others asked the same").
This is a plain keyword-overlap heuristic: deterministic, explainable and
free of extra infrastructure. It scans every stored situation, which is fine
for a community-sized corpus and is the first thing to revisit if it grows.
"""

import re
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from shared.models.models import Situation

MIN_KEYWORDS = 2
MIN_KEYWORD_LENGTH = 3

STOP_WORDS = frozenset({
    # pronouns
    "you", "your", "yours", "yourself", "him", "his", "her", "hers", "herself",
    "himself", "she", "they", "them", "their", "theirs", "themselves", "its",
    "itself", "our", "ours", "ourselves", "mine", "myself", "who", "whom",
    "whose", "what", "which", "this", "that", "these", "those", "someone",
    "somebody", "anyone", "everyone", "something", "anything", "everything",
    # articles, conjunctions, prepositions
    "the", "and", "but", "for", "nor", "yet", "with", "without", "about",
    "from", "into", "onto", "over", "under", "after", "before", "between",
    "through", "during", "against", "around", "because", "since", "until",
    "while", "than", "then", "when", "where", "how", "why", "also", "just",
    "very", "really", "too", "not", "all", "any", "some", "more", "most",
    "much", "many", "such", "only", "own", "same", "other", "each", "both",
    "few", "again", "once", "here", "there", "out", "off", "even", "still",
    # auxiliaries and modals
    "are", "was", "were", "been", "being", "have", "has", "had", "having",
    "does", "did", "doing", "done", "will", "would", "shall", "should", "can",
    "could", "may", "might", "must", "get", "got", "getting", "gets",
    # contraction stems left after punctuation is stripped
    "don", "doesn", "didn", "isn", "aren", "wasn", "weren", "haven", "hasn",
    "hadn", "won", "wouldn", "shouldn", "couldn", "cant", "dont",
    "didnt", "doesnt", "isnt", "wont", "ive", "youre", "theyre", "thats",
    "whats", "let", "ill", "iam",
    # domain-generic words that appear in almost every question
    "jesus", "god", "christ", "lord", "bible", "biblical", "christian",
    "feel", "feeling", "feels", "felt", "want", "wants", "wanted",
    "need", "needs", "know", "think", "like", "make", "help",
    "situation", "going", "thing", "things", "wwjd",
})

_NON_WORD = re.compile(r"[^\w\s]")


@dataclass
class MatchScore:
    match_count: int
    match_ratio: float

    @property
    def score(self) -> float:
        # The integer count dominates; the ratio only separates equal counts.
        return self.match_count + self.match_ratio


def extract_keywords(text: str) -> List[str]:
    """Lowercased content words of text, in order."""
    cleaned = _NON_WORD.sub(" ", text.lower())
    return [
        token for token in cleaned.split()
        if len(token) >= MIN_KEYWORD_LENGTH and token not in STOP_WORDS
    ]


def score_candidate(keywords: Sequence[str], candidate_text: str) -> MatchScore:
    haystack = candidate_text.lower()
    match_count = sum(1 for keyword in keywords if keyword in haystack)
    return MatchScore(match_count=match_count, match_ratio=match_count / len(keywords))


def rank_candidates(
    keywords: Sequence[str],
    candidates: Iterable[Tuple[int, str]],
    min_matches: int,
    min_ratio: float,
) -> Optional[int]:
    """
    Return the id of the best eligible (id, text) candidate, or None.

    Candidates must arrive most-recent-first: on an exact score tie the
    first one seen is kept.
    """
    if len(keywords) < MIN_KEYWORDS:
        return None

    best_id: Optional[int] = None
    best_score = -1.0
    for candidate_id, text in candidates:
        match = score_candidate(keywords, text)
        if match.match_count < min_matches or match.match_ratio < min_ratio:
            continue
        if match.score > best_score:
            best_id, best_score = candidate_id, match.score
    return best_id


async def find_similar(
    db: AsyncSession,
    question: str,
    min_matches: Optional[int] = None,
    min_ratio: Optional[float] = None,
) -> Optional[Situation]:
    """Stored situation closest to question by keyword overlap, or None."""
    keywords = extract_keywords(question)
    if len(keywords) < MIN_KEYWORDS:
        return None

    if min_matches is None:
        min_matches = settings.DUPLICATE_MIN_MATCHES
    if min_ratio is None:
        min_ratio = settings.DUPLICATE_MIN_MATCH_RATIO

    result = await db.execute(
        select(Situation.id, Situation.situation)
        .order_by(Situation.created_at.desc(), Situation.id.desc())
    )
    best_id = rank_candidates(keywords, result.all(), min_matches, min_ratio)
    if best_id is None:
        return None
    return await db.get(Situation, best_id)
