from __future__ import annotations

import random
from datetime import datetime, timedelta, timezone

from app.core.logging import get_logger
from app.schemas.analysis import ContentAnalysis
from app.services.llm import JsonCompletionClient
from app.utils.text import coerce_percentage, non_empty_str

logger = get_logger(__name__)

SYSTEM_PROMPT = (
    "You are an expert at analyzing text to determine if it was likely written by an AI system. "
    "Provide results in JSON format."
)
USER_PROMPT_TEMPLATE = (
    "Analyze this content and determine the probability it was AI-generated, the content type, "
    "and when it may have first appeared online (estimate): {content}"
)

DEFAULT_CONTENT_TYPE = "Article"
FALLBACK_CONTENT_TYPES = ("Article", "Social Media Post")
# Fallback first-seen timestamps land anywhere in the last 10^10 ms (about 116 days).
FALLBACK_FIRST_SEEN_WINDOW = timedelta(milliseconds=10_000_000_000)


def _timestamp(value: datetime) -> str:
    return value.replace(microsecond=0).isoformat()


class ContentClassifier:
    def __init__(self, llm: JsonCompletionClient, rng: random.Random | None = None) -> None:
        self.llm = llm
        self.rng = rng or random.Random()

    def fallback(self) -> ContentAnalysis:
        offset = FALLBACK_FIRST_SEEN_WINDOW * self.rng.random()
        return ContentAnalysis(
            content_type=self.rng.choice(FALLBACK_CONTENT_TYPES),
            first_seen=_timestamp(datetime.now(timezone.utc) - offset),
            ai_probability=self.rng.random() * 100,
            source="fallback",
        )

    async def classify(self, content: str) -> ContentAnalysis:
        try:
            result = await self.llm.complete_json(SYSTEM_PROMPT, USER_PROMPT_TEMPLATE.format(content=content))
        except Exception as exc:
            logger.warning("classifier_fallback", error=str(exc), error_type=type(exc).__name__)
            return self.fallback()

        ai_probability = coerce_percentage(result.get("aiProbability"))
        return ContentAnalysis(
            content_type=non_empty_str(result.get("contentType")) or DEFAULT_CONTENT_TYPE,
            first_seen=non_empty_str(result.get("firstSeen")) or _timestamp(datetime.now(timezone.utc)),
            ai_probability=ai_probability if ai_probability is not None else self.rng.random() * 100,
            source="model",
        )
