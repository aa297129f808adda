"""
tests/test_generator.py
Tests for parsing guidance model output.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from services.situation.generator import OpenAIGuidanceGenerator, normalize_tags, parse_guidance
from shared.utils.errors import GuidanceGenerationError


def test_parse_plain_json():
    result = parse_guidance(
        '{"response": "Turn the other cheek.", "verses": ["Matthew 5:39"], "tags": ["Conflict", "peace"]}'
    )
    assert result.response == "Turn the other cheek."
    assert result.verses == ["Matthew 5:39"]
    assert result.tags == ["conflict", "peace"]


def test_parse_strips_code_fence():
    content = '```json\n{"response": "Pray for them.", "verses": [], "tags": ["prayer"]}\n```'
    result = parse_guidance(content)
    assert result.response == "Pray for them."
    assert result.tags == ["prayer"]


def test_parse_non_json_recovers_verses():
    content = (
        "Jesus would forgive. See Matthew 18:21-22, Luke 6:37, 1 John 1:9, "
        "Colossians 3:13 and Ephesians 4:32."
    )
    result = parse_guidance(content)
    assert result.response == content
    assert result.verses == ["Matthew 18:21-22", "Luke 6:37", "1 John 1:9", "Colossians 3:13"]
    assert result.tags == []


def test_parse_json_without_response_field_falls_back():
    result = parse_guidance('{"answer": "Love your neighbor (Mark 12:31)"}')
    assert result.tags == []
    assert result.verses == ["Mark 12:31"]


def test_normalize_tags_dedupes_case_insensitively():
    assert normalize_tags(["Grief", "grief ", "FAMILY", "", 3]) == ["grief", "family"]


def _completion(content):
    message = MagicMock(content=content)
    return MagicMock(choices=[MagicMock(message=message)])


@pytest.mark.asyncio
async def test_generator_wraps_client_errors():
    client = MagicMock()
    client.chat.completions.create = AsyncMock(side_effect=RuntimeError("timeout"))

    with pytest.raises(GuidanceGenerationError):
        await OpenAIGuidanceGenerator(client, model="gpt-4o").generate("My boss yells at me")


@pytest.mark.asyncio
async def test_generator_rejects_empty_completion():
    client = MagicMock()
    client.chat.completions.create = AsyncMock(return_value=_completion("  "))

    with pytest.raises(GuidanceGenerationError):
        await OpenAIGuidanceGenerator(client, model="gpt-4o").generate("My boss yells at me")


@pytest.mark.asyncio
async def test_generator_parses_completion():
    client = MagicMock()
    client.chat.completions.create = AsyncMock(
        return_value=_completion('{"response": "Be patient.", "verses": ["James 1:19"], "tags": ["work"]}')
    )

    result = await OpenAIGuidanceGenerator(client, model="gpt-4o").generate("My boss yells at me")
    assert result.response == "Be patient."
    assert result.verses == ["James 1:19"]
    kwargs = client.chat.completions.create.call_args.kwargs
    assert kwargs["model"] == "gpt-4o"
    assert "My boss yells at me" in kwargs["messages"][1]["content"]
