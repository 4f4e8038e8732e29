import asyncio
import base64
import os
import sys

import pytest

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "../backend")))

from services.image_prep import FetchedImage
from services.orchestrator import CompareOrchestrator, StaticAvailability
from services.sanitize import ErrorSanitizer
from settings import CompareConfig

# 1x1 red pixel PNG
RED_PIXEL_B64 = "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR42mP8z8BQDwAEhQGAhKmMIQAAAABJRU5ErkJggg=="
RED_PIXEL_PNG = base64.b64decode(RED_PIXEL_B64)
RED_PIXEL_DATA_URL = f"data:image/png;base64,{RED_PIXEL_B64}"

OPENAI_OK = {"output": [{"type": "message", "content": [{"type": "output_text", "text": "OpenAI response body"}]}]}
DEEPSEEK_OK = {"choices": [{"message": {"role": "assistant", "content": "DeepSeek response body"}}]}
ANTHROPIC_OK = {"content": [{"type": "text", "text": "Anthropic response body"}]}

ALL_AVAILABLE = {"openai": True, "deepseek": True, "anthropic": True}


class FakeTransport:
    """Records every native request; answers with a canned body, an error, or after a delay."""

    def __init__(self, response=None, error=None, delay=0.0):
        self.response = response if response is not None else {}
        self.error = error
        self.delay = delay
        self.requests = []
        self.cancelled = False

    async def send(self, native_request):
        self.requests.append(native_request)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
        except asyncio.CancelledError:
            self.cancelled = True
            raise
        if self.error is not None:
            raise self.error
        return self.response


class CountingFetcher:
    def __init__(self, media_type="image/png", content=RED_PIXEL_PNG, error=None, delay=0.0):
        self.media_type = media_type
        self.content = content
        self.error = error
        self.delay = delay
        self.calls = []

    async def fetch(self, url):
        self.calls.append(url)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return FetchedImage(media_type=self.media_type, content=self.content)


def default_transports():
    return {
        "openai": FakeTransport(OPENAI_OK),
        "deepseek": FakeTransport(DEEPSEEK_OK),
        "anthropic": FakeTransport(ANTHROPIC_OK),
    }


def make_orchestrator(transports=None, availability=None, fetcher=None, production=False, config=None):
    return CompareOrchestrator(
        config=config or CompareConfig(),
        transports=default_transports() if transports is None else transports,
        availability=StaticAvailability(ALL_AVAILABLE if availability is None else availability),
        image_fetcher=fetcher or CountingFetcher(),
        sanitizer=ErrorSanitizer(production=production),
    )


@pytest.fixture
def override_orchestrator():
    """Route POST /compare through an orchestrator built from test doubles."""
    from main import app
    from routers.compare import get_orchestrator, provider_rate_limiter

    provider_rate_limiter.reset()

    def _install(orchestrator):
        app.dependency_overrides[get_orchestrator] = lambda: orchestrator
        return orchestrator

    yield _install
    app.dependency_overrides.clear()
    provider_rate_limiter.reset()
