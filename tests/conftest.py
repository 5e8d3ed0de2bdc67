from __future__ import annotations

import random
from typing import Any

import pytest

from app.core.config import Settings


def make_settings(**overrides: Any) -> Settings:
    values: dict[str, Any] = {
        "OPENAI_API_KEY": "",
        "OPENAI_BASE_URL": "",
        "REPLICATE_API_TOKEN": "",
        "REPLICATE_API_BASE": "https://replicate.test/v1",
        "REPLICATE_POLL_INTERVAL_SECONDS": 0.0,
        "ENVIRONMENT": "test",
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


class FakeLLM:
    def __init__(self, result: dict[str, Any] | None = None, error: Exception | None = None) -> None:
        self.result = result
        self.error = error
        self.calls: list[tuple[str, str]] = []

    async def complete_json(self, system_prompt: str, user_prompt: str) -> dict[str, Any]:
        self.calls.append((system_prompt, user_prompt))
        if self.error is not None:
            raise self.error
        return dict(self.result or {})


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def rng() -> random.Random:
    return random.Random(1234)
