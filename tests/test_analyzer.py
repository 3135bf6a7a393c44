"""Tests for the LLM-backed episode analyzer."""

import json
from datetime import date
from typing import List

import pytest

from episode_digest.core.errors import AnalysisError
from episode_digest.core.schemas import ItemMetadata
from episode_digest.processing.analyzer import EpisodeAnalyzer, _extract_json


class ScriptedLLM:
    """Returns the queued responses in order."""

    def __init__(self, responses: List[str], max_attempts: int = 3):
        self.responses = list(responses)
        self.max_attempts = max_attempts
        self.model = "llama3.1:8b"
        self.prompts: List[str] = []

    async def evaluate(self, prompt: str):
        self.prompts.append(prompt)
        return {"raw": None, "content": self.responses.pop(0), "latency_ms": 5}


META = ItemMetadata(
    id="ep-42",
    source_name="Morning Politics",
    title="The week in Washington",
    published_date=date(2024, 1, 8),
    content_ref="https://cdn.example.com/ep-42.mp3",
    summary="Hosts discuss the January 6 committee report and grocery prices.",
)

GOOD = {
    "id": "something-else",
    "topics": [
        {"topic_label": "January 6", "sentiment": 140, "confidence": "0.9", "prominence": 0.7,
         "evidence_quotes": ["The report lands Monday.", ""]},
        {"topic_label": "", "sentiment": 50},
        {"sentiment": 50},
        {"topic_label": "Economy", "sentiment": "n/a"},
    ],
    "overall_sentiment": 45,
    "key_quotes": ["The report lands Monday."],
}


def test_extract_json_strips_fences():
    assert _extract_json('```json\n{"a": 1}\n```') == '{"a": 1}'
    assert _extract_json('Sure! {"a": 1} Hope that helps.') == '{"a": 1}'
    assert _extract_json('[{"a": 1}]') == '[{"a": 1}]'


def test_prompt_includes_episode_details():
    analyzer = EpisodeAnalyzer(ScriptedLLM([]))
    prompt = analyzer.build_prompt(META)

    assert "Morning Politics" in prompt
    assert "The week in Washington" in prompt
    assert "grocery prices" in prompt
    assert "2024-01-08" in prompt


def test_prompt_without_summary_points_at_audio():
    analyzer = EpisodeAnalyzer(ScriptedLLM([]))
    prompt = analyzer.build_prompt(META.model_copy(update={"summary": None}))
    assert "https://cdn.example.com/ep-42.mp3" in prompt


@pytest.mark.asyncio
async def test_analyze_builds_insight():
    llm = ScriptedLLM(["```json\n" + json.dumps(GOOD) + "\n```"])
    insight = await EpisodeAnalyzer(llm).analyze("ep-42", META, "v2.0.0")

    assert insight.id == "ep-42"
    assert insight.source_name == "Morning Politics"
    assert insight.schema_version == "v2.0.0"
    assert insight.model_id == "llama3.1:8b"
    assert [t.topic_label for t in insight.topics] == ["January 6", "Economy"]
    january, economy = insight.topics
    assert january.sentiment == 100.0
    assert january.confidence == 0.9
    assert january.evidence_quotes == ["The report lands Monday."]
    assert economy.sentiment is None
    assert insight.overall_sentiment == 45.0
    assert insight.processed_at.tzinfo is not None


@pytest.mark.asyncio
async def test_retries_invalid_json_then_succeeds():
    llm = ScriptedLLM(["not json at all", json.dumps(GOOD)], max_attempts=3)
    insight = await EpisodeAnalyzer(llm).analyze("ep-42", META, "v2.0.0")

    assert len(llm.prompts) == 2
    assert insight.id == "ep-42"


@pytest.mark.asyncio
async def test_gives_up_after_max_attempts():
    llm = ScriptedLLM(["nope", "still nope"], max_attempts=2)

    with pytest.raises(AnalysisError):
        await EpisodeAnalyzer(llm).analyze("ep-42", META, "v2.0.0")
    assert len(llm.prompts) == 2


@pytest.mark.asyncio
async def test_json_array_is_rejected():
    llm = ScriptedLLM(['[{"topic_label": "Economy"}]'], max_attempts=1)

    with pytest.raises(AnalysisError):
        await EpisodeAnalyzer(llm).analyze("ep-42", META, "v2.0.0")


@pytest.mark.asyncio
async def test_missing_topics_gives_empty_insight():
    llm = ScriptedLLM(['{"overall_sentiment": "high"}'])
    insight = await EpisodeAnalyzer(llm, model_id="custom").analyze("ep-42", META, "v2.0.0")

    assert insight.topics == []
    assert insight.overall_sentiment == 50.0
    assert insight.model_id == "custom"
