import json
import math
import re
from typing import Any

_NUMBER_RE = re.compile(r"-?\d+(?:\.\d+)?")


def truncate(text: str, max_chars: int) -> str:
    if max_chars <= 0 or len(text) <= max_chars:
        return text
    return text[:max_chars]


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def coerce_number(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    numeric: float | None = None
    if isinstance(value, (int, float)):
        try:
            numeric = float(value)
        except OverflowError:
            return None
    elif isinstance(value, str):
        match = _NUMBER_RE.search(value.strip())
        if match:
            numeric = float(match.group(0))
    if numeric is None or not math.isfinite(numeric):
        return None
    return numeric


def coerce_percentage(value: Any) -> float | None:
    numeric = coerce_number(value)
    if numeric is None:
        return None
    return float(clamp(numeric, 0.0, 100.0))


def non_empty_str(value: Any) -> str | None:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def extract_json_object(raw_text: str) -> dict[str, Any] | None:
    """Parse the first JSON object embedded in free-form model output."""
    text = raw_text.strip()
    if not text:
        return None
    try:
        parsed = json.loads(text)
    except ValueError:
        start = text.find("{")
        end = text.rfind("}")
        if start == -1 or end <= start:
            return None
        try:
            parsed = json.loads(text[start : end + 1])
        except ValueError:
            return None
    return parsed if isinstance(parsed, dict) else None
