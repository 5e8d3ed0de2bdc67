from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

Provenance = Literal["model", "fallback"]
SpreadPattern = Literal["Viral", "Gradual"]
Severity = Literal["low", "medium", "high"]


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class AnalysisRequest(CamelModel):
    url: str = Field(min_length=1)


class ContentAnalysis(CamelModel):
    content_type: str
    first_seen: str
    ai_probability: float = Field(ge=0.0, le=100.0)
    source: Provenance = Field(default="model", exclude=True)


class TimelinePoint(CamelModel):
    date: str
    shares: int = Field(ge=0)


class PlatformShare(CamelModel):
    name: str
    shares: int = Field(ge=0)


class DemographicSlice(CamelModel):
    name: str
    value: int = Field(ge=0)


class SpreadData(CamelModel):
    timeline: list[TimelinePoint]
    platforms: list[PlatformShare]
    demographics: list[DemographicSlice]


class Anomaly(CamelModel):
    description: str
    severity: Severity


class SpreadAnalysis(CamelModel):
    spread_pattern: SpreadPattern
    spread_data: SpreadData
    anomalies: list[Anomaly]
    source: Provenance = Field(default="model", exclude=True)


class RelatedContentItem(CamelModel):
    url: str
    similarity: float = Field(ge=0.0, le=100.0)
    ai_probability: float = Field(ge=0.0, le=100.0)


class RelatedContent(CamelModel):
    items: list[RelatedContentItem]
    source: Provenance = "model"


class AnalysisResponse(CamelModel):
    url: str
    content_type: str
    first_seen: str
    spread_pattern: SpreadPattern
    ai_probability: float = Field(ge=0.0, le=100.0)
    spread_data: SpreadData
    related_content: list[RelatedContentItem]
    anomalies: list[Anomaly]
