import json

import httpx
import pytest

from app.services.spread import (
    DEMOGRAPHIC_CAPS,
    PLATFORM_CAPS,
    SEVERITIES,
    SPREAD_PATTERNS,
    TIMELINE_CAPS,
    SpreadAnalyzer,
)
from conftest import make_settings

URL = "https://example.com/article"

MODEL_REPORT = {
    "spreadPattern": "viral",
    "spreadData": {
        "timeline": [{"date": "Day 1", "shares": 10}, {"date": "Day 2", "shares": "250"}],
        "platforms": [{"name": "Twitter", "shares": 1200}],
        "demographics": [{"name": "18-24", "value": 40}],
    },
    "anomalies": [
        {"description": "Burst of reposts within an hour", "severity": "HIGH"},
        {"description": "Identical captions", "severity": "critical"},
    ],
}


def _assert_fabricated(result):
    assert result.source == "fallback"
    assert result.spread_pattern in SPREAD_PATTERNS
    timeline = result.spread_data.timeline
    assert [point.date for point in timeline] == [label for label, _ in TIMELINE_CAPS]
    assert all(0 <= point.shares < cap for point, (_, cap) in zip(timeline, TIMELINE_CAPS))
    platforms = result.spread_data.platforms
    assert [p.name for p in platforms] == [name for name, _ in PLATFORM_CAPS]
    assert all(0 <= p.shares < cap for p, (_, cap) in zip(platforms, PLATFORM_CAPS))
    demographics = result.spread_data.demographics
    assert [d.name for d in demographics] == [name for name, _ in DEMOGRAPHIC_CAPS]
    assert all(0 <= d.value < cap for d, (_, cap) in zip(demographics, DEMOGRAPHIC_CAPS))
    assert len(result.anomalies) == 3
    assert result.anomalies[0].severity in {"high", "medium"}
    assert result.anomalies[1].severity in {"medium", "low"}
    assert result.anomalies[2].severity in {"low", "medium"}


def _analyzer(handler, rng, **overrides) -> SpreadAnalyzer:
    settings = make_settings(REPLICATE_API_TOKEN="r8_test", **overrides)
    return SpreadAnalyzer(settings, transport=httpx.MockTransport(handler), rng=rng)


def _prediction(status: str, output=None, **extra) -> dict:
    return {
        "id": "pred-1",
        "status": status,
        "output": output,
        "error": extra.pop("error", None),
        "urls": {"get": "https://replicate.test/v1/predictions/pred-1"},
        **extra,
    }


@pytest.mark.asyncio
async def test_analyze_without_token_fabricates(settings, rng):
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("provider must not be called without a token")

    analyzer = SpreadAnalyzer(settings, transport=httpx.MockTransport(handler), rng=rng)

    _assert_fabricated(await analyzer.analyze(URL))


@pytest.mark.asyncio
async def test_analyze_parses_model_output(rng):
    captured: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        captured.append(request)
        tokens = ["Here is the report: ", json.dumps(MODEL_REPORT)[:20], json.dumps(MODEL_REPORT)[20:]]
        return httpx.Response(201, json=_prediction("succeeded", output=tokens))

    result = await _analyzer(handler, rng).analyze(URL)

    assert result.source == "model"
    assert result.spread_pattern == "Viral"
    assert [(p.date, p.shares) for p in result.spread_data.timeline] == [("Day 1", 10), ("Day 2", 250)]
    assert [(p.name, p.shares) for p in result.spread_data.platforms] == [("Twitter", 1200)]
    assert [(d.name, d.value) for d in result.spread_data.demographics] == [("18-24", 40)]
    assert [a.severity for a in result.anomalies] == ["high", "medium"]

    request = captured[0]
    assert request.url.path == "/v1/models/meta/meta-llama-3-8b-instruct/predictions"
    assert request.headers["authorization"] == "Bearer r8_test"
    assert request.headers["prefer"] == "wait"
    assert URL in json.loads(request.content)["input"]["prompt"]


@pytest.mark.asyncio
async def test_analyze_uses_versioned_endpoint(rng):
    captured: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/v1/predictions"
        captured.append(json.loads(request.content))
        return httpx.Response(201, json=_prediction("succeeded", output=json.dumps(MODEL_REPORT)))

    result = await _analyzer(handler, rng, REPLICATE_SPREAD_MODEL="acme/spread:abc123").analyze(URL)

    assert result.source == "model"
    assert captured[0]["version"] == "abc123"


@pytest.mark.asyncio
async def test_analyze_polls_pending_prediction(rng):
    calls = {"get": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        if request.method == "POST":
            return httpx.Response(201, json=_prediction("starting"))
        calls["get"] += 1
        if calls["get"] < 2:
            return httpx.Response(200, json=_prediction("processing"))
        return httpx.Response(200, json=_prediction("succeeded", output=[json.dumps(MODEL_REPORT)]))

    result = await _analyzer(handler, rng).analyze(URL)

    assert result.source == "model"
    assert calls["get"] == 2


@pytest.mark.asyncio
async def test_analyze_gives_up_after_max_polls(rng):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=_prediction("processing"))

    result = await _analyzer(handler, rng, REPLICATE_MAX_POLLS=2).analyze(URL)

    _assert_fabricated(result)


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(401, json={"detail": "Unauthenticated"}),
        httpx.Response(201, json=_prediction("failed", error="CUDA out of memory")),
        httpx.Response(201, json=_prediction("succeeded", output=["no json here"])),
        httpx.Response(201, json=_prediction("succeeded", output=None)),
        httpx.Response(200, text="<html>bad gateway</html>"),
    ],
)
async def test_analyze_fabricates_on_provider_failure(rng, response):
    def handler(request: httpx.Request) -> httpx.Response:
        return response

    _assert_fabricated(await _analyzer(handler, rng).analyze(URL))


@pytest.mark.asyncio
async def test_analyze_fabricates_on_network_error(rng):
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("unreachable", request=request)

    _assert_fabricated(await _analyzer(handler, rng).analyze(URL))


def test_normalize_fills_missing_sections(settings, rng):
    result = SpreadAnalyzer(settings, rng=rng).normalize({"spreadPattern": "Gradual", "spreadData": "oops"})

    assert result.source == "model"
    assert result.spread_pattern == "Gradual"
    assert len(result.spread_data.timeline) == 7
    assert len(result.spread_data.platforms) == 5
    assert len(result.spread_data.demographics) == 5
    assert all(anomaly.severity in SEVERITIES for anomaly in result.anomalies)


def test_normalize_replaces_unknown_pattern_and_negative_counts(settings, rng):
    payload = {
        "spreadPattern": "Explosive",
        "spreadData": {"timeline": [{"date": "Day 1", "shares": -5}, {"date": "", "shares": 3}]},
    }

    result = SpreadAnalyzer(settings, rng=rng).normalize(payload)

    assert result.spread_pattern in SPREAD_PATTERNS
    assert [(p.date, p.shares) for p in result.spread_data.timeline] == [("Day 1", 0)]


def test_fabricate_matches_fixed_layout(settings, rng):
    _assert_fabricated(SpreadAnalyzer(settings, rng=rng).fabricate())


@pytest.mark.asyncio
@pytest.mark.parametrize("literal", ["NaN", "Infinity", "-Infinity", "1e400"])
async def test_analyze_survives_non_finite_counts(rng, literal):
    output = '{"spreadPattern": "Gradual", "spreadData": {"timeline": [{"date": "Day 1", "shares": %s}]}}' % literal

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(201, json=_prediction("succeeded", output=[output]))

    result = await _analyzer(handler, rng).analyze(URL)

    assert result.source == "model"
    assert result.spread_pattern == "Gradual"
    assert len(result.spread_data.timeline) == 7
    assert all(point.shares >= 0 for point in result.spread_data.timeline)


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "prediction",
    [
        {"id": "pred-1", "status": "starting", "urls": ["x"]},
        {"id": "pred-1", "status": "processing", "urls": None},
        {"id": "pred-1", "status": "succeeded", "output": {"text": "{}"}},
        {"id": "pred-1", "status": "succeeded", "output": ["{\"n\": " + "9" * 5000 + "}"]},
    ],
)
async def test_analyze_fabricates_on_malformed_prediction(rng, prediction):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(201, json=prediction)

    _assert_fabricated(await _analyzer(handler, rng).analyze(URL))
