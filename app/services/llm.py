from __future__ import annotations

import json
from typing import Any, Protocol

import httpx
from openai import AsyncOpenAI

from app.core.config import Settings
from app.core.logging import get_logger

logger = get_logger(__name__)


class LLMUnavailableError(RuntimeError):
    pass


class LLMResponseError(RuntimeError):
    pass


class JsonCompletionClient(Protocol):
    async def complete_json(self, system_prompt: str, user_prompt: str) -> dict[str, Any]: ...


class OpenAIJsonClient:
    """Chat-completion client that asks for and decodes a JSON object response."""

    def __init__(self, settings: Settings, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self.settings = settings
        self.model = settings.openai_model
        self.transport = transport

    def _client(self) -> AsyncOpenAI:
        if not self.settings.llm_configured:
            raise LLMUnavailableError("OPENAI_API_KEY is not configured")
        return AsyncOpenAI(
            api_key=self.settings.openai_api_key,
            base_url=self.settings.openai_base_url or None,
            timeout=self.settings.openai_timeout_seconds,
            max_retries=0,
            http_client=httpx.AsyncClient(transport=self.transport) if self.transport is not None else None,
        )

    async def complete_json(self, system_prompt: str, user_prompt: str) -> dict[str, Any]:
        client = self._client()
        try:
            completion = await client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
                response_format={"type": "json_object"},
            )
        finally:
            await client.close()

        if not completion.choices:
            raise LLMResponseError("Completion returned no choices")
        content = completion.choices[0].message.content or ""
        try:
            parsed = json.loads(content)
        except json.JSONDecodeError as exc:
            raise LLMResponseError(f"Completion was not valid JSON: {content[:180]}") from exc
        if not isinstance(parsed, dict):
            raise LLMResponseError("Completion JSON was not an object")

        logger.debug("llm_completion_parsed", model=self.model, keys=sorted(parsed.keys()))
        return parsed
