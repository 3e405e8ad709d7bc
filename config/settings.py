# config/settings.py

from typing import Literal, Optional
from urllib.parse import urlparse

from pydantic import AliasChoices, BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class HackerNewsConfig(BaseModel):
    """Config for the Hacker News Firebase API."""

    api_base_url: str = "https://hacker-news.firebaseio.com/v0"
    permalink_base_url: str = "https://news.ycombinator.com/item"
    timeout_seconds: float = 5.0
    max_retries: int = 3
    backoff_factor: float = 0.5  # tenacity exponential multiplier: 0.5, 1, 2...
    max_backoff_seconds: float = 4.0
    default_story_limit: int = 10
    max_story_limit: int = 30
    max_comments: int = 10


class OpenAIConfig(BaseModel):
    """Config for OpenAI chat completions."""

    decision_model: str = "gpt-4o-mini"
    answer_model: str = "gpt-4o"
    temperature: float = 0.2
    request_timeout_seconds: float = 30.0


class StreamingConfig(BaseModel):
    """Pacing of the synthetic word stream."""

    min_delay_seconds: float = 0.010
    max_delay_seconds: float = 0.030


class OrchestratorConfig(BaseModel):
    max_tool_result_chars: int = 48_000  # 0 disables truncation


class RateLimitConfig(BaseModel):
    limit: int = 50
    window_seconds: int = 86_400
    key_prefix: str = "hackernews_ratelimit"
    redis_url: Optional[str] = None


class LoggingConfig(BaseModel):
    """Basic logging config."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    json_logging: bool = True


class ModulesConfig(BaseModel):
    hn_api_name: str = "HackerNewsFirebaseClient"


class Settings(BaseSettings):
    """Top-level app settings loaded from environment / .env."""

    # High-level runtime env; anything but "dev" counts as a deployment
    env: Literal["dev", "staging", "prod"] = "dev"

    # Vendor credentials keep their conventional names
    openai_api_key: Optional[str] = Field(
        None, repr=False, validation_alias=AliasChoices("OPENAI_API_KEY", "openai_api_key")
    )
    kv_rest_api_url: Optional[str] = Field(
        None, validation_alias=AliasChoices("KV_REST_API_URL", "kv_rest_api_url")
    )
    kv_rest_api_token: Optional[str] = Field(
        None, repr=False, validation_alias=AliasChoices("KV_REST_API_TOKEN", "kv_rest_api_token")
    )

    # Nested configs
    modules: ModulesConfig = ModulesConfig()
    hn: HackerNewsConfig = HackerNewsConfig()
    openai: OpenAIConfig = OpenAIConfig()
    streaming: StreamingConfig = StreamingConfig()
    orchestrator: OrchestratorConfig = OrchestratorConfig()
    rate_limit: RateLimitConfig = RateLimitConfig()
    logging: LoggingConfig = LoggingConfig()

    # pydantic-settings v2 config
    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="APP_",              # all vars start with APP_
        env_nested_delimiter="__",      # APP_HN__TIMEOUT_SECONDS, etc.
        case_sensitive=False,
        populate_by_name=True,
        extra="ignore",
    )

    @property
    def rate_limit_active(self) -> bool:
        return self.env != "dev" and bool(self.kv_rest_api_url) and bool(self.kv_rest_api_token)

    def redis_url(self) -> Optional[str]:
        if self.rate_limit.redis_url:
            return self.rate_limit.redis_url
        if not (self.kv_rest_api_url and self.kv_rest_api_token):
            return None
        host = urlparse(self.kv_rest_api_url).hostname or self.kv_rest_api_url
        return f"rediss://default:{self.kv_rest_api_token}@{host}:6379"


# Default instance for the module-level app
settings = Settings()
