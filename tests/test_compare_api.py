"""End-to-end tests for POST /compare through the ASGI app with fake providers."""
import os
import sys

import pytest
from httpx import AsyncClient, ASGITransport

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "../backend")))
from main import app
from conftest import (
    ANTHROPIC_OK,
    DEEPSEEK_OK,
    OPENAI_OK,
    RED_PIXEL_B64,
    RED_PIXEL_DATA_URL,
    CountingFetcher,
    FakeTransport,
    default_transports,
    make_orchestrator,
)


def _client():
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


@pytest.mark.asyncio
async def test_health():
    async with _client() as client:
        for path in ("/health", "/api/health"):
            res = await client.get(path)
            assert res.status_code == 200
            assert res.text == "OK"


@pytest.mark.asyncio
async def test_missing_prompt_is_rejected_without_dispatch(override_orchestrator):
    transports = default_transports()
    override_orchestrator(make_orchestrator(transports))

    async with _client() as client:
        res = await client.post("/compare", json={"providers": ["openai"]})
        blank = await client.post("/compare", json={"prompt": "   ", "providers": ["openai"]})

    assert res.status_code == 400
    assert res.json() == {
        "error": '"prompt" is required and must be a non-empty string.',
        "unsupportedProviders": [],
    }
    assert blank.status_code == 400
    assert all(not t.requests for t in transports.values())


@pytest.mark.asyncio
async def test_partial_success_when_one_key_is_missing(override_orchestrator):
    transports = {"openai": FakeTransport(OPENAI_OK)}
    override_orchestrator(make_orchestrator(
        transports, availability={"openai": True, "deepseek": False, "anthropic": True},
    ))

    async with _client() as client:
        res = await client.post("/compare", json={
            "prompt": "Compare this answer",
            "providers": ["openai", "deepseek"],
        })

    assert res.status_code == 200
    body = res.json()
    assert body["request"]["prompt"] == "Compare this answer"
    assert body["request"]["providers"] == ["openai", "deepseek"]
    assert body["request"]["timeoutMs"] == 45000
    assert body["request"]["unsupportedProviders"] == []
    assert "imageUrl" not in body["request"]

    first, second = body["results"]
    assert first["provider"] == "openai"
    assert first["status"] == "success"
    assert first["text"] == "OpenAI response body"
    assert first["model"] == "gpt-4o-mini"
    assert isinstance(first["latencyMs"], int)
    assert "error" not in first
    assert second == {
        "provider": "deepseek",
        "status": "error",
        "latencyMs": 0,
        "error": "deepseek API key is not configured",
    }


@pytest.mark.asyncio
async def test_deepseek_image_capability_guard(override_orchestrator):
    transports = default_transports()
    fetcher = CountingFetcher()
    override_orchestrator(make_orchestrator(transports, fetcher=fetcher))

    async with _client() as client:
        res = await client.post("/compare", json={
            "prompt": "What is in this image?",
            "imageUrl": "https://example.com/image.jpg",
            "providers": ["deepseek"],
        })

    assert res.status_code == 200
    assert res.json()["results"] == [{
        "provider": "deepseek",
        "status": "error",
        "latencyMs": 0,
        "error": "Image input is not supported for the configured DeepSeek text model.",
    }]
    assert transports["deepseek"].requests == []
    assert fetcher.calls == []


@pytest.mark.asyncio
async def test_image_is_forwarded_to_openai(override_orchestrator):
    openai = FakeTransport({"output": [{"content": [{"type": "output_text", "text": "Image summary"}]}]})
    fetcher = CountingFetcher(media_type="image/png")
    override_orchestrator(make_orchestrator({"openai": openai}, fetcher=fetcher))

    async with _client() as client:
        res = await client.post("/compare", json={
            "prompt": "Describe this image briefly",
            "imageUrl": "https://example.com/cat.png",
            "providers": ["openai"],
        })

    assert res.status_code == 200
    body = res.json()
    assert body["request"]["imageUrl"] == "https://example.com/cat.png"
    assert body["results"][0]["status"] == "success"
    assert body["results"][0]["text"] == "Image summary"
    assert fetcher.calls == ["https://example.com/cat.png"]

    sent = openai.requests[0]
    assert sent["input"][0]["role"] == "user"
    assert sent["input"][0]["content"] == [
        {"type": "input_text", "text": "Describe this image briefly"},
        {"type": "input_image", "image_url": RED_PIXEL_DATA_URL},
    ]


@pytest.mark.asyncio
async def test_image_failure_and_capability_guard_are_distinguishable(override_orchestrator):
    fetcher = CountingFetcher(media_type="text/html", content=b"<html>nope</html>")
    transports = default_transports()
    override_orchestrator(make_orchestrator(transports, fetcher=fetcher))

    async with _client() as client:
        res = await client.post("/compare", json={
            "prompt": "What is in this image?",
            "imageUrl": "https://example.com/not-an-image",
            "providers": ["openai", "deepseek"],
        })

    assert res.status_code == 200
    openai_result, deepseek_result = res.json()["results"]
    assert openai_result["status"] == "error"
    assert openai_result["latencyMs"] == 0
    assert "image/" in openai_result["error"]
    assert deepseek_result["error"] == "Image input is not supported for the configured DeepSeek text model."
    assert openai_result["error"] != deepseek_result["error"]
    assert transports["openai"].requests == []
    assert transports["deepseek"].requests == []


@pytest.mark.asyncio
async def test_inline_image_never_fetches(override_orchestrator):
    fetcher = CountingFetcher()
    anthropic = FakeTransport(ANTHROPIC_OK)
    override_orchestrator(make_orchestrator({"anthropic": anthropic}, fetcher=fetcher))

    async with _client() as client:
        res = await client.post("/compare", json={
            "prompt": "Describe",
            "imageUrl": RED_PIXEL_DATA_URL,
            "providers": ["anthropic"],
        })

    assert res.status_code == 200
    assert res.json()["results"][0]["text"] == "Anthropic response body"
    assert fetcher.calls == []
    image_block = anthropic.requests[0]["messages"][0]["content"][1]
    assert image_block == {
        "type": "image",
        "source": {"type": "base64", "media_type": "image/png", "data": RED_PIXEL_B64},
    }


@pytest.mark.asyncio
async def test_default_providers_in_canonical_order(override_orchestrator):
    override_orchestrator(make_orchestrator())

    async with _client() as client:
        res = await client.post("/compare", json={"prompt": "Hello"})

    body = res.json()
    assert body["request"]["providers"] == ["openai", "deepseek", "anthropic"]
    assert [r["provider"] for r in body["results"]] == ["openai", "deepseek", "anthropic"]
    assert [r["text"] for r in body["results"]] == [
        "OpenAI response body", "DeepSeek response body", "Anthropic response body",
    ]


@pytest.mark.asyncio
async def test_unsupported_providers_are_reported_not_dispatched(override_orchestrator):
    override_orchestrator(make_orchestrator())

    async with _client() as client:
        res = await client.post("/compare", json={
            "prompt": "Hello",
            "providers": [" DeepSeek ", "gemini", "openai", "deepseek"],
        })

    body = res.json()
    assert res.status_code == 200
    assert body["request"]["providers"] == ["deepseek", "openai"]
    assert body["request"]["unsupportedProviders"] == ["gemini"]
    assert [r["provider"] for r in body["results"]] == ["deepseek", "openai"]


@pytest.mark.asyncio
async def test_no_valid_provider_is_a_validation_error(override_orchestrator):
    transports = default_transports()
    override_orchestrator(make_orchestrator(transports))

    async with _client() as client:
        res = await client.post("/api/compare", json={"prompt": "Hello", "providers": ["gemini", "mistral"]})

    assert res.status_code == 400
    assert res.json() == {
        "error": 'At least one supported provider is required in "providers".',
        "unsupportedProviders": ["gemini", "mistral"],
    }
    assert all(not t.requests for t in transports.values())


@pytest.mark.asyncio
async def test_empty_image_url_is_rejected(override_orchestrator):
    override_orchestrator(make_orchestrator())

    async with _client() as client:
        res = await client.post("/compare", json={"prompt": "Describe this image", "imageUrl": ""})

    assert res.status_code == 400
    assert res.json() == {
        "error": '"imageUrl" must be a non-empty string when provided.',
        "unsupportedProviders": [],
    }


@pytest.mark.asyncio
async def test_malformed_json_is_rejected(override_orchestrator):
    override_orchestrator(make_orchestrator())

    async with _client() as client:
        res = await client.post(
            "/compare", content=b"{not json", headers={"Content-Type": "application/json"},
        )

    assert res.status_code == 400
    assert res.json()["error"] == "Request body must be valid JSON."


@pytest.mark.asyncio
async def test_timeout_is_reported_per_provider(override_orchestrator):
    transports = {
        "openai": FakeTransport(OPENAI_OK, delay=5.0),
        "deepseek": FakeTransport(DEEPSEEK_OK),
    }
    override_orchestrator(make_orchestrator(transports))

    async with _client() as client:
        res = await client.post("/compare", json={
            "prompt": "Hello",
            "providers": ["openai", "deepseek"],
            "providerOptions": {"timeoutMs": 50},
        })

    body = res.json()
    assert body["request"]["timeoutMs"] == 50
    slow, fast = body["results"]
    assert slow["status"] == "error"
    assert slow["error"] == "openai request timed out after 50ms"
    assert 40 <= slow["latencyMs"] < 2000
    assert fast["status"] == "success"


@pytest.mark.asyncio
async def test_oversized_numeric_options_fall_back_to_defaults(override_orchestrator):
    transports = default_transports()
    override_orchestrator(make_orchestrator(transports))
    huge = 10 ** 400

    async with _client() as client:
        res = await client.post("/compare", json={
            "prompt": "Hi",
            "providers": ["openai", "deepseek"],
            "providerOptions": {
                "timeoutMs": huge,
                "openai": {"maxOutputTokens": huge},
                "deepseek": {"maxTokens": huge},
            },
        })

    assert res.status_code == 200
    body = res.json()
    assert body["request"]["timeoutMs"] == 45000
    assert [r["status"] for r in body["results"]] == ["success", "success"]
    assert transports["openai"].requests[0]["max_output_tokens"] == 1024
    assert transports["deepseek"].requests[0]["max_tokens"] == 1024


@pytest.mark.asyncio
async def test_per_provider_options_reach_the_request(override_orchestrator):
    transports = default_transports()
    override_orchestrator(make_orchestrator(transports))

    async with _client() as client:
        await client.post("/compare", json={
            "prompt": "Hello",
            "providerOptions": {
                "openai": {"maxOutputTokens": 300},
                "deepseek": {"maxTokens": "200"},
                "anthropic": {"maxTokens": -5},
            },
        })

    assert transports["openai"].requests[0]["max_output_tokens"] == 300
    assert transports["deepseek"].requests[0]["max_tokens"] == 200
    assert transports["anthropic"].requests[0]["max_tokens"] == 1024
