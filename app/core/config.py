from functools import lru_cache
import json
from urllib.parse import urlsplit

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    app_name: str = Field(default="Content Provenance API", alias="APP_NAME")
    environment: str = Field(default="development", alias="ENVIRONMENT")
    api_prefix: str = Field(default="/api", alias="API_PREFIX")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    cors_allowed_origins: str = Field(default="http://localhost:3000", alias="CORS_ALLOWED_ORIGINS")

    openai_api_key: str = Field(default="", alias="OPENAI_API_KEY")
    openai_base_url: str = Field(default="", alias="OPENAI_BASE_URL")
    openai_model: str = Field(default="gpt-4", alias="OPENAI_MODEL")
    openai_timeout_seconds: float = Field(default=30.0, alias="OPENAI_TIMEOUT_SECONDS")
    llm_max_input_chars: int = Field(default=12000, alias="LLM_MAX_INPUT_CHARS")

    replicate_api_token: str = Field(default="", alias="REPLICATE_API_TOKEN")
    replicate_api_base: str = Field(default="https://api.replicate.com/v1", alias="REPLICATE_API_BASE")
    replicate_spread_model: str = Field(default="meta/meta-llama-3-8b-instruct", alias="REPLICATE_SPREAD_MODEL")
    replicate_timeout_seconds: float = Field(default=60.0, alias="REPLICATE_TIMEOUT_SECONDS")
    replicate_max_polls: int = Field(default=5, alias="REPLICATE_MAX_POLLS")
    replicate_poll_interval_seconds: float = Field(default=1.0, alias="REPLICATE_POLL_INTERVAL_SECONDS")

    fetch_timeout_seconds: float = Field(default=10.0, alias="FETCH_TIMEOUT_SECONDS")

    sentry_dsn: str = Field(default="", alias="SENTRY_DSN")

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, value: object) -> object:
        if not isinstance(value, str):
            return "INFO"
        normalized = value.strip().upper()
        if normalized in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            return normalized
        return "INFO"

    @field_validator("replicate_api_base", mode="before")
    @classmethod
    def strip_trailing_slash(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip().rstrip("/")
        return value

    @field_validator("api_prefix", mode="before")
    @classmethod
    def normalize_api_prefix(cls, value: object) -> object:
        if not isinstance(value, str):
            return value
        stripped = value.strip().strip("/")
        return f"/{stripped}" if stripped else ""

    @staticmethod
    def _normalize_origin(origin: str) -> str:
        candidate = origin.strip().strip("'\"")
        if not candidate:
            return ""

        if "://" not in candidate:
            candidate = f"https://{candidate}"

        parsed = urlsplit(candidate)
        if not parsed.scheme or not parsed.netloc:
            return ""

        # CORS matching is exact on scheme+host+port; paths must be removed.
        return f"{parsed.scheme}://{parsed.netloc}".rstrip("/")

    @property
    def cors_origins(self) -> list[str]:
        raw = self.cors_allowed_origins.strip()
        if not raw:
            return []

        values: list[str]
        if raw.startswith("["):
            try:
                parsed = json.loads(raw)
                if isinstance(parsed, list):
                    values = [str(item) for item in parsed]
                else:
                    values = [raw]
            except json.JSONDecodeError:
                values = [raw]
        else:
            values = raw.split(",")

        normalized = [self._normalize_origin(value) for value in values]
        return [origin for origin in normalized if origin]

    @property
    def llm_configured(self) -> bool:
        return bool(self.openai_api_key.strip())

    @property
    def replicate_configured(self) -> bool:
        return bool(self.replicate_api_token.strip())


@lru_cache
def get_settings() -> Settings:
    return Settings()
