import json
import logging
import re
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict

from pydantic import ValidationError

from episode_digest.core.errors import AnalysisError
from episode_digest.core.schemas import ItemInsight, ItemMetadata
from episode_digest.services.llm import OllamaClient

logger = logging.getLogger(__name__)

MAX_SUMMARY_CHARS = 6000

EPISODE_PROMPT = """You are a media analyst. Identify the main topics discussed in this podcast episode.

SHOW: {source_name}
EPISODE: {title}
PUBLISHED: {published_date}

CONTENT:
{content}

For each topic provide:
- topic_label: short name of the subject (2-5 words)
- sentiment: how the episode treats the topic, 0 (very negative) to 100 (very positive)
- confidence: how sure you are the topic is really discussed, 0.0-1.0
- prominence: share of the episode spent on the topic, 0.0-1.0
- evidence_quotes: up to 3 short quotes or close paraphrases from the content

Return ONLY a JSON object:
{{"topics": [{{"topic_label": "...", "sentiment": 55, "confidence": 0.8, "prominence": 0.4, "evidence_quotes": ["..."]}}],
 "overall_sentiment": 50, "is_focus_subject": false, "key_quotes": ["..."]}}

JSON object:"""


def _extract_json(content: str) -> str:
    """
    Extract JSON from LLM response, stripping markdown code blocks if present.
    """
    content = content.strip()

    # Remove markdown code blocks (```json ... ``` or ``` ... ```)
    pattern = r'^```(?:json)?\s*\n?(.*?)\n?```$'
    match = re.match(pattern, content, re.DOTALL)
    if match:
        return match.group(1).strip()

    # Well-formed JSON (including a top-level array) is returned untouched
    try:
        json.loads(content)
        return content
    except json.JSONDecodeError:
        pass

    object_match = re.search(r'\{.*\}', content, re.DOTALL)
    if object_match:
        return object_match.group(0)

    return content


class ItemAnalyzer(ABC):
    """
    Turns one discovered episode into a fully scored insight.
    Implementations own their retry policy; any exception is one failed item.
    """

    @abstractmethod
    async def analyze(self, item_id: str, metadata: ItemMetadata, schema_version: str) -> ItemInsight:
        pass


class EpisodeAnalyzer(ItemAnalyzer):
    def __init__(self, llm: OllamaClient, model_id: str | None = None):
        self.llm = llm
        self.model_id = model_id or llm.model

    def build_prompt(self, metadata: ItemMetadata) -> str:
        content = (metadata.summary or "").strip()[:MAX_SUMMARY_CHARS]
        if not content:
            content = f"(no show notes available; audio at {metadata.content_ref or 'unknown'})"
        return EPISODE_PROMPT.format(
            source_name=metadata.source_name,
            title=metadata.title,
            published_date=metadata.published_date.isoformat(),
            content=content,
        )

    def _parse(self, raw_content: str) -> Dict[str, Any]:
        parsed = json.loads(_extract_json(raw_content))
        if not isinstance(parsed, dict):
            raise ValueError(f"Expected a JSON object, got {type(parsed).__name__}")
        return parsed

    def build_insight(
        self,
        item_id: str,
        metadata: ItemMetadata,
        schema_version: str,
        parsed: Dict[str, Any],
    ) -> ItemInsight:
        topics = parsed.get("topics")
        payload = {
            "topics": [
                t for t in topics if isinstance(t, dict) and t.get("topic_label")
            ] if isinstance(topics, list) else [],
            "overall_sentiment": parsed.get("overall_sentiment"),
            "is_focus_subject": bool(parsed.get("is_focus_subject", False)),
            "key_quotes": parsed.get("key_quotes", []),
            # Identity always comes from the request, never from the model
            "id": item_id,
            "source_name": metadata.source_name,
            "title": metadata.title,
            "published_date": metadata.published_date,
            "content_ref": metadata.content_ref,
            "schema_version": schema_version,
            "processed_at": datetime.now(timezone.utc),
            "model_id": self.model_id,
        }
        return ItemInsight.model_validate(payload)

    async def analyze(self, item_id: str, metadata: ItemMetadata, schema_version: str) -> ItemInsight:
        prompt = self.build_prompt(metadata)
        attempts = self.llm.max_attempts
        last_error: Exception | None = None

        for attempt in range(1, attempts + 1):
            response = await self.llm.evaluate(prompt)
            raw_content = response["content"]
            logger.debug(f"LLM response for {item_id} (latency: {response['latency_ms']}ms)")

            try:
                parsed = self._parse(raw_content)
            except (json.JSONDecodeError, ValueError) as e:
                last_error = e
                logger.warning(f"Attempt {attempt}/{attempts}: invalid JSON for {item_id}: {e}")
                continue

            try:
                return self.build_insight(item_id, metadata, schema_version, parsed)
            except ValidationError as e:
                logger.error(f"Invalid analysis for {item_id}: {e}")
                raise AnalysisError(f"Invalid analysis for {item_id}: {e}") from e

        raise AnalysisError(f"Invalid JSON response from LLM for {item_id}: {last_error}")
