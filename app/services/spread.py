from __future__ import annotations

import asyncio
import random
from typing import Any

import httpx

from app.core.config import Settings
from app.core.logging import get_logger
from app.schemas.analysis import (
    Anomaly,
    DemographicSlice,
    PlatformShare,
    SpreadAnalysis,
    SpreadData,
    TimelinePoint,
)
from app.utils.text import coerce_number, extract_json_object, non_empty_str

logger = get_logger(__name__)

SPREAD_PATTERNS = ("Viral", "Gradual")
SEVERITIES = ("low", "medium", "high")

# Upper bounds (exclusive) for fabricated share counts.
TIMELINE_CAPS = (
    ("Day 1", 100),
    ("Day 2", 500),
    ("Day 3", 1000),
    ("Day 4", 2000),
    ("Day 5", 3000),
    ("Day 6", 2500),
    ("Day 7", 2000),
)
PLATFORM_CAPS = (("Twitter", 5000), ("Facebook", 3000), ("Reddit", 2000), ("Instagram", 1500), ("TikTok", 1000))
DEMOGRAPHIC_CAPS = (("18-24", 30), ("25-34", 30), ("35-44", 20), ("45-54", 15), ("55+", 10))
ANOMALY_TEMPLATES = (
    ("Unusual sharing pattern", ("high", "medium")),
    ("Coordinated sharing from new accounts", ("medium", "low")),
    ("Inconsistent engagement metrics", ("low", "medium")),
)

_PENDING_STATUSES = {"starting", "processing"}
_TERMINAL_FAILURES = {"failed", "canceled", "aborted"}

SYSTEM_PROMPT = "You are a social media analyst. Respond with a single JSON object and nothing else."
PROMPT_TEMPLATE = (
    "Estimate how the content at this URL has spread online: {url}\n"
    "Return JSON with keys: spreadPattern (\"Viral\" or \"Gradual\"), "
    "spreadData {{timeline: [{{date, shares}}] for Day 1 to Day 7, "
    "platforms: [{{name, shares}}] for Twitter, Facebook, Reddit, Instagram, TikTok, "
    "demographics: [{{name, value}}] for age brackets 18-24, 25-34, 35-44, 45-54, 55+}}, "
    "anomalies: [{{description, severity (\"low\", \"medium\" or \"high\")}}]."
)


class SpreadPredictionError(RuntimeError):
    pass


class SpreadAnalyzer:
    """Spread analysis backed by a text model hosted on Replicate.

    The prediction output is parsed as JSON and normalised section by section.
    Sections the model leaves out or mangles are filled with fabricated values,
    and the whole result is fabricated when no prediction can be obtained.
    """

    def __init__(
        self,
        settings: Settings,
        transport: httpx.AsyncBaseTransport | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self.settings = settings
        self.transport = transport
        self.rng = rng or random.Random()

    # Fabricated data

    def _fabricated_pattern(self) -> str:
        return self.rng.choice(SPREAD_PATTERNS)

    def _fabricated_timeline(self) -> list[TimelinePoint]:
        return [TimelinePoint(date=label, shares=self.rng.randrange(cap)) for label, cap in TIMELINE_CAPS]

    def _fabricated_platforms(self) -> list[PlatformShare]:
        return [PlatformShare(name=name, shares=self.rng.randrange(cap)) for name, cap in PLATFORM_CAPS]

    def _fabricated_demographics(self) -> list[DemographicSlice]:
        return [DemographicSlice(name=name, value=self.rng.randrange(cap)) for name, cap in DEMOGRAPHIC_CAPS]

    def _fabricated_anomalies(self) -> list[Anomaly]:
        return [
            Anomaly(description=description, severity=self.rng.choice(choices))
            for description, choices in ANOMALY_TEMPLATES
        ]

    def fabricate(self) -> SpreadAnalysis:
        return SpreadAnalysis(
            spread_pattern=self._fabricated_pattern(),
            spread_data=SpreadData(
                timeline=self._fabricated_timeline(),
                platforms=self._fabricated_platforms(),
                demographics=self._fabricated_demographics(),
            ),
            anomalies=self._fabricated_anomalies(),
            source="fallback",
        )

    # Normalisation of model output

    @staticmethod
    def _count(value: Any) -> int | None:
        numeric = coerce_number(value)
        if numeric is None:
            return None
        return max(0, int(numeric))

    @classmethod
    def _pairs(cls, raw: Any, label_key: str, count_key: str) -> list[tuple[str, int]]:
        if not isinstance(raw, list):
            return []
        pairs: list[tuple[str, int]] = []
        for item in raw:
            if not isinstance(item, dict):
                continue
            label = non_empty_str(item.get(label_key))
            count = cls._count(item.get(count_key))
            if label is not None and count is not None:
                pairs.append((label, count))
        return pairs

    def _normalize_pattern(self, raw: Any) -> str | None:
        label = non_empty_str(raw)
        if label is None:
            return None
        return next((pattern for pattern in SPREAD_PATTERNS if pattern.lower() == label.lower()), None)

    def _normalize_anomalies(self, raw: Any) -> list[Anomaly]:
        if not isinstance(raw, list):
            return []
        anomalies: list[Anomaly] = []
        for item in raw:
            if not isinstance(item, dict):
                continue
            description = non_empty_str(item.get("description"))
            if description is None:
                continue
            severity = (non_empty_str(item.get("severity")) or "").lower()
            anomalies.append(Anomaly(description=description, severity=severity if severity in SEVERITIES else "medium"))
        return anomalies

    def normalize(self, payload: dict[str, Any]) -> SpreadAnalysis:
        filled: list[str] = []
        spread_data = payload.get("spreadData")
        if not isinstance(spread_data, dict):
            spread_data = {}

        pattern = self._normalize_pattern(payload.get("spreadPattern"))
        if pattern is None:
            filled.append("spreadPattern")
            pattern = self._fabricated_pattern()

        timeline = [TimelinePoint(date=d, shares=s) for d, s in self._pairs(spread_data.get("timeline"), "date", "shares")]
        if not timeline:
            filled.append("timeline")
            timeline = self._fabricated_timeline()

        platforms = [PlatformShare(name=n, shares=s) for n, s in self._pairs(spread_data.get("platforms"), "name", "shares")]
        if not platforms:
            filled.append("platforms")
            platforms = self._fabricated_platforms()

        demographics = [
            DemographicSlice(name=n, value=v) for n, v in self._pairs(spread_data.get("demographics"), "name", "value")
        ]
        if not demographics:
            filled.append("demographics")
            demographics = self._fabricated_demographics()

        anomalies = self._normalize_anomalies(payload.get("anomalies"))
        if not anomalies:
            filled.append("anomalies")
            anomalies = self._fabricated_anomalies()

        if filled:
            logger.info("spread_sections_fabricated", sections=filled)

        return SpreadAnalysis(
            spread_pattern=pattern,
            spread_data=SpreadData(timeline=timeline, platforms=platforms, demographics=demographics),
            anomalies=anomalies,
            source="model",
        )

    # Replicate predictions API

    def _prediction_request(self, url: str) -> tuple[str, dict[str, Any]]:
        base = self.settings.replicate_api_base
        model_ref = self.settings.replicate_spread_model.strip()
        model_input = {
            "prompt": PROMPT_TEMPLATE.format(url=url),
            "system_prompt": SYSTEM_PROMPT,
            "max_new_tokens": 1024,
            "temperature": 0.2,
        }
        if ":" in model_ref:
            _, version = model_ref.split(":", 1)
            return f"{base}/predictions", {"version": version, "input": model_input}
        return f"{base}/models/{model_ref}/predictions", {"input": model_input}

    @staticmethod
    def _json_or_raise(response: httpx.Response, stage: str) -> dict[str, Any]:
        if response.status_code >= 400:
            raise SpreadPredictionError(f"{stage} returned HTTP {response.status_code}: {response.text[:180]}")
        try:
            payload = response.json()
        except ValueError as exc:
            raise SpreadPredictionError(f"{stage} returned a non-JSON body") from exc
        if not isinstance(payload, dict):
            raise SpreadPredictionError(f"{stage} returned an unexpected payload")
        return payload

    async def _await_prediction(self, client: httpx.AsyncClient, prediction: dict[str, Any]) -> dict[str, Any]:
        polls = 0
        while prediction.get("status") in _PENDING_STATUSES:
            urls = prediction.get("urls")
            if not isinstance(urls, dict):
                raise SpreadPredictionError(f"Prediction is {prediction.get('status')} without a polling URL")
            get_url = urls.get("get")
            if not isinstance(get_url, str) or polls >= self.settings.replicate_max_polls:
                raise SpreadPredictionError(f"Prediction still {prediction.get('status')} after {polls} polls")
            polls += 1
            await asyncio.sleep(self.settings.replicate_poll_interval_seconds)
            prediction = self._json_or_raise(await client.get(get_url), "prediction poll")

        status = prediction.get("status")
        if status in _TERMINAL_FAILURES:
            raise SpreadPredictionError(f"Prediction {status}: {str(prediction.get('error'))[:180]}")
        return prediction

    @staticmethod
    def _output_text(prediction: dict[str, Any]) -> str:
        output = prediction.get("output")
        if isinstance(output, list):
            return "".join(str(token) for token in output)
        if isinstance(output, str):
            return output
        raise SpreadPredictionError("Prediction produced no text output")

    async def _predict(self, url: str) -> dict[str, Any]:
        endpoint, body = self._prediction_request(url)
        headers = {
            "Authorization": f"Bearer {self.settings.replicate_api_token}",
            "Prefer": "wait",
        }
        async with httpx.AsyncClient(
            timeout=httpx.Timeout(self.settings.replicate_timeout_seconds),
            headers=headers,
            transport=self.transport,
        ) as client:
            created = self._json_or_raise(await client.post(endpoint, json=body), "prediction create")
            prediction = await self._await_prediction(client, created)

        text = self._output_text(prediction)
        payload = extract_json_object(text)
        if payload is None:
            raise SpreadPredictionError(f"Prediction output was not a JSON object: {text[:180]}")
        return payload

    async def analyze(self, url: str) -> SpreadAnalysis:
        if not self.settings.replicate_configured:
            logger.info("spread_provider_unconfigured")
            return self.fabricate()

        try:
            payload = await self._predict(url)
            return self.normalize(payload)
        except Exception as exc:
            logger.warning("spread_prediction_failed", url=url, error=str(exc), error_type=type(exc).__name__)
            return self.fabricate()
