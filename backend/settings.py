import os
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping, Optional

from dotenv import load_dotenv

load_dotenv()

SUPPORTED_PROVIDERS = ("openai", "deepseek", "anthropic")
DEFAULT_COMPARE_TIMEOUT_MS = 45000
DEFAULT_MAX_TOKENS = 1024
MAX_IMAGE_BYTES = 10 * 1024 * 1024
IMAGE_FETCH_TIMEOUT_S = 20.0

DEEPSEEK_IMAGE_UNSUPPORTED = "Image input is not supported for the configured DeepSeek text model."


def _positive_int(value, fallback: int) -> int:
    try:
        n = int(float(value))
    except (TypeError, ValueError, OverflowError):
        return fallback
    return n if n > 0 else fallback


def _split_csv(value: Optional[str]) -> list[str]:
    return [item.strip() for item in (value or "").split(",") if item.strip()]


@dataclass(frozen=True)
class CompareConfig:
    """Immutable view of everything the orchestrator needs to know about providers."""

    providers: tuple = SUPPORTED_PROVIDERS
    models: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({
        "openai": "gpt-4o-mini",
        "deepseek": "deepseek-chat",
        "anthropic": "claude-3-5-haiku-latest",
    }))
    # provider -> None when images are accepted, else the fixed rejection message
    image_support: Mapping[str, Optional[str]] = field(default_factory=lambda: MappingProxyType({
        "openai": None,
        "deepseek": DEEPSEEK_IMAGE_UNSUPPORTED,
        "anthropic": None,
    }))
    default_timeout_ms: int = DEFAULT_COMPARE_TIMEOUT_MS
    default_max_tokens: int = DEFAULT_MAX_TOKENS
    openai_reasoning_effort: Optional[str] = None
    max_image_bytes: int = MAX_IMAGE_BYTES
    image_fetch_timeout_s: float = IMAGE_FETCH_TIMEOUT_S

    def supports_image(self, provider: str) -> bool:
        return self.image_support.get(provider) is None

    def image_rejection(self, provider: str) -> Optional[str]:
        return self.image_support.get(provider)


class Settings:
    DEFAULT_OPENAI_BASE_URL = "https://api.openai.com/v1"
    DEFAULT_DEEPSEEK_BASE_URL = "https://api.deepseek.com"
    DEFAULT_ANTHROPIC_BASE_URL = "https://api.anthropic.com/v1"

    def __init__(self, env: Optional[Mapping[str, str]] = None):
        env = os.environ if env is None else env

        self.app_env = env.get("APP_ENV", "development").strip().lower()
        self.log_level = env.get("LOG_LEVEL", "info").strip().upper()

        self.api_keys = {
            "openai": env.get("OPENAI_API_KEY", "").strip(),
            "deepseek": env.get("DEEPSEEK_API_KEY", "").strip(),
            "anthropic": env.get("ANTHROPIC_API_KEY", "").strip(),
        }
        self.models = {
            "openai": env.get("OPENAI_MODEL") or "gpt-4o-mini",
            "deepseek": env.get("DEEPSEEK_MODEL") or "deepseek-chat",
            "anthropic": env.get("ANTHROPIC_MODEL") or "claude-3-5-haiku-latest",
        }
        self.base_urls = {
            "openai": (env.get("OPENAI_BASE_URL") or self.DEFAULT_OPENAI_BASE_URL).rstrip("/"),
            "deepseek": (env.get("DEEPSEEK_BASE_URL") or self.DEFAULT_DEEPSEEK_BASE_URL).rstrip("/"),
            "anthropic": (env.get("ANTHROPIC_BASE_URL") or self.DEFAULT_ANTHROPIC_BASE_URL).rstrip("/"),
        }
        self.openai_reasoning_effort = env.get("OPENAI_REASONING_EFFORT") or None
        self.provider_http_timeout_s = float(_positive_int(env.get("PROVIDER_HTTP_TIMEOUT_S"), 60))
        self.compare_timeout_ms = _positive_int(env.get("COMPARE_TIMEOUT_MS"), DEFAULT_COMPARE_TIMEOUT_MS)

        self.allowed_origins = [o.lower() for o in _split_csv(env.get("ALLOWED_ORIGINS"))]
        self.api_access_keys = _split_csv(env.get("API_ACCESS_KEYS"))
        self.rate_limit_window_ms = _positive_int(env.get("RATE_LIMIT_WINDOW_MS"), 60_000)
        self.rate_limit_max_requests = _positive_int(env.get("RATE_LIMIT_MAX_REQUESTS"), 60)
        self.port = _positive_int(env.get("PORT"), 3001)

    def is_production(self) -> bool:
        return self.app_env == "production"

    def get_api_key(self, provider: str) -> str:
        return self.api_keys.get(provider, "")

    def provider_availability(self) -> dict:
        """Returns provider -> bool, True when a credential is configured."""
        return {p: bool(key) for p, key in self.api_keys.items()}

    def compare_config(self) -> CompareConfig:
        return CompareConfig(
            models=MappingProxyType(dict(self.models)),
            default_timeout_ms=self.compare_timeout_ms,
            openai_reasoning_effort=self.openai_reasoning_effort,
        )


settings = Settings()
