"""
tests/test_matcher.py
Tests for keyword extraction and near-duplicate matching.
"""

from datetime import timedelta

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from services.situation.matcher import (
    extract_keywords,
    find_similar,
    rank_candidates,
    score_candidate,
)
from tests.conftest import make_situation


# ── Keywords ──────────────────────────────────────────────────

def test_extract_keywords_drops_short_and_stop_words():
    keywords = extract_keywords("What would Jesus do if my boss yells at me?")
    assert keywords == ["boss", "yells"]


def test_extract_keywords_strips_punctuation_and_lowercases():
    assert extract_keywords("Betrayal, GOSSIP... and lies!") == ["betrayal", "gossip", "lies"]


def test_extract_keywords_keeps_repeats():
    assert extract_keywords("money money money") == ["money", "money", "money"]


def test_extract_keywords_contractions_do_not_leak():
    assert extract_keywords("I don't know, I can't decide") == ["decide"]


# ── Scoring ───────────────────────────────────────────────────

def test_score_is_substring_based():
    match = score_candidate(["forgive", "parent", "anger"], "Forgiveness for my parents")
    assert match.match_count == 2
    assert match.match_ratio == pytest.approx(2 / 3)


def test_rank_requires_both_thresholds():
    keywords = ["anger", "brother", "inheritance", "lawyer", "court"]
    candidates = [
        (1, "anger at my brother"),            # 2 matches, ratio 0.4
        (2, "my brother"),                     # 1 match
    ]
    assert rank_candidates(keywords, candidates, min_matches=2, min_ratio=0.4) == 1
    assert rank_candidates(keywords, candidates, min_matches=3, min_ratio=0.4) is None
    assert rank_candidates(keywords, candidates, min_matches=2, min_ratio=0.5) is None


def test_rank_prefers_higher_count():
    keywords = ["anger", "brother", "inheritance"]
    candidates = [
        (1, "anger toward brother"),
        (2, "anger toward brother over inheritance"),
    ]
    assert rank_candidates(keywords, candidates, min_matches=2, min_ratio=0.4) == 2


def test_rank_tie_keeps_first_candidate():
    keywords = ["divorce", "children"]
    candidates = [(10, "divorce and children"), (5, "children after divorce")]
    assert rank_candidates(keywords, candidates, min_matches=2, min_ratio=0.4) == 10


def test_rank_needs_two_keywords():
    assert rank_candidates(["grief"], [(1, "grief")], min_matches=1, min_ratio=0.0) is None


# ── Store-backed lookup ───────────────────────────────────────

@pytest.mark.asyncio
async def test_find_similar_returns_none_for_empty_store(db: AsyncSession):
    assert await find_similar(db, "my sister stole my car") is None


@pytest.mark.asyncio
async def test_find_similar_too_few_keywords(db: AsyncSession):
    await make_situation(db, "How do I handle gossip at church?")
    assert await find_similar(db, "gossip?") is None


@pytest.mark.asyncio
async def test_find_similar_prefers_most_recent_on_tie(db: AsyncSession):
    await make_situation(db, "gossip spreading at church", age=timedelta(days=2))
    newer = await make_situation(db, "church members gossip", age=timedelta(days=1))

    match = await find_similar(db, "gossip in my church")
    assert match is not None
    assert match.id == newer.id


@pytest.mark.asyncio
async def test_find_similar_respects_configured_thresholds(db: AsyncSession):
    await make_situation(db, "my boss and coworkers ignore me")

    question = "boss coworkers deadlines overtime promotion"
    assert await find_similar(db, question, min_matches=2, min_ratio=0.4) is not None
    assert await find_similar(db, question, min_matches=2, min_ratio=0.5) is None
