import json
import logging
from typing import Any, Optional, Protocol

import httpx

from services.errors import UpstreamProviderError

logger = logging.getLogger(__name__)


class ProviderTransport(Protocol):
    async def send(self, native_request: dict) -> dict: ...


def _decode_body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except (json.JSONDecodeError, ValueError):
        return response.text


class HttpxProviderTransport:
    """POSTs one JSON request to a provider endpoint and returns the decoded JSON."""

    provider = "provider"
    path = ""

    def __init__(
        self,
        api_key: str,
        base_url: str,
        timeout_s: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.url = f"{base_url.rstrip('/')}{self.path}"
        self.timeout_s = timeout_s
        self._transport = transport

    def headers(self) -> dict:
        key = self.api_key.strip()
        auth_val = key if key.lower().startswith("bearer ") else f"Bearer {key}"
        return {
            "Authorization": auth_val,
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    async def send(self, native_request: dict) -> dict:
        async with httpx.AsyncClient(timeout=self.timeout_s, transport=self._transport) as client:
            try:
                response = await client.post(self.url, headers=self.headers(), json=native_request)
            except httpx.HTTPError as e:
                raise UpstreamProviderError(self.provider, f"{self.provider} request failed: {type(e).__name__}: {e}")

        if response.status_code >= 400:
            raise UpstreamProviderError(
                self.provider,
                f"{self.provider} returned HTTP {response.status_code}",
                status_code=response.status_code,
                payload=_decode_body(response),
            )

        data = _decode_body(response)
        if not isinstance(data, dict):
            raise UpstreamProviderError(
                self.provider,
                f"{self.provider} returned a non-JSON body",
                status_code=response.status_code,
                payload=data,
            )
        return data


class OpenAIResponsesTransport(HttpxProviderTransport):
    provider = "openai"
    path = "/responses"


class DeepSeekChatTransport(HttpxProviderTransport):
    provider = "deepseek"
    path = "/chat/completions"


class AnthropicMessagesTransport(HttpxProviderTransport):
    provider = "anthropic"
    path = "/messages"
    api_version = "2023-06-01"

    def headers(self) -> dict:
        return {
            "x-api-key": self.api_key.strip(),
            "anthropic-version": self.api_version,
            "Content-Type": "application/json",
            "Accept": "application/json",
        }


TRANSPORT_CLASSES = {
    "openai": OpenAIResponsesTransport,
    "deepseek": DeepSeekChatTransport,
    "anthropic": AnthropicMessagesTransport,
}


def build_transports(settings) -> dict:
    """One transport per provider with a configured key."""
    transports = {}
    for provider, cls in TRANSPORT_CLASSES.items():
        key = settings.get_api_key(provider)
        if not key:
            continue
        transports[provider] = cls(
            api_key=key,
            base_url=settings.base_urls[provider],
            timeout_s=settings.provider_http_timeout_s,
        )
    return transports
