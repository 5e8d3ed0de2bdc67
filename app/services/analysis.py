from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass

from app.core.config import Settings
from app.core.logging import get_logger
from app.schemas.analysis import AnalysisRequest, AnalysisResponse, ContentAnalysis, RelatedContent, SpreadAnalysis
from app.services.classifier import ContentClassifier
from app.services.content_fetcher import ContentFetcher
from app.services.llm import OpenAIJsonClient
from app.services.related import RelatedContentFinder
from app.services.spread import SpreadAnalyzer
from app.utils.text import truncate

logger = get_logger(__name__)


@dataclass
class AnalysisOutcome:
    response: AnalysisResponse
    content_source: str
    spread_source: str
    related_source: str

    @property
    def sources_header(self) -> str:
        return f"content={self.content_source},spread={self.spread_source},related={self.related_source}"


class AnalysisService:
    def __init__(
        self,
        settings: Settings,
        fetcher: ContentFetcher,
        classifier: ContentClassifier,
        spread_analyzer: SpreadAnalyzer,
        related_finder: RelatedContentFinder,
    ) -> None:
        self.settings = settings
        self.fetcher = fetcher
        self.classifier = classifier
        self.spread_analyzer = spread_analyzer
        self.related_finder = related_finder

    @classmethod
    def from_settings(cls, settings: Settings) -> AnalysisService:
        llm = OpenAIJsonClient(settings)
        return cls(
            settings=settings,
            fetcher=ContentFetcher(settings),
            classifier=ContentClassifier(llm),
            spread_analyzer=SpreadAnalyzer(settings),
            related_finder=RelatedContentFinder(llm),
        )

    async def _analyze_content(self, url: str) -> ContentAnalysis:
        content = await self.fetcher.fetch(url)
        return await self.classifier.classify(truncate(content, self.settings.llm_max_input_chars))

    async def analyze(self, request: AnalysisRequest) -> AnalysisOutcome:
        start = time.perf_counter()
        url = request.url.strip()

        content: ContentAnalysis
        spread: SpreadAnalysis
        related: RelatedContent
        content, spread, related = await asyncio.gather(
            self._analyze_content(url),
            self.spread_analyzer.analyze(url),
            self.related_finder.find(url),
        )

        response = AnalysisResponse(
            url=request.url,
            content_type=content.content_type,
            first_seen=content.first_seen,
            spread_pattern=spread.spread_pattern,
            ai_probability=content.ai_probability,
            spread_data=spread.spread_data,
            related_content=related.items,
            anomalies=spread.anomalies,
        )
        outcome = AnalysisOutcome(
            response=response,
            content_source=content.source,
            spread_source=spread.source,
            related_source=related.source,
        )
        logger.info(
            "analysis_complete",
            url=url,
            sources=outcome.sources_header,
            latency_ms=round((time.perf_counter() - start) * 1000, 3),
        )
        return outcome
