"""
One adapter per provider: build the native request, call the transport, and
flatten the native response into a `ProviderOutput(model, text)`.
"""

from typing import Any, Awaitable, Callable, Dict, Optional

from models.schemas import ProviderOutput
from services.errors import UnsupportedCapabilityError
from services.image_prep import ImagePayload
from services.transports import ProviderTransport
from settings import CompareConfig


def positive_int_or_default(value: Any, fallback: int) -> int:
    """Positive finite number, floored. Anything else falls back."""
    if isinstance(value, bool) or value is None:
        return fallback
    try:
        n = float(value)
    except (TypeError, ValueError, OverflowError):
        return fallback
    if n != n or n in (float("inf"), float("-inf")) or n <= 0:
        return fallback
    return max(int(n), 1)


def _joined(parts) -> str:
    return "\n".join(parts).strip()


def extract_openai_text(data: Any) -> str:
    if not isinstance(data, dict) or not isinstance(data.get("output"), list):
        return ""
    texts = []
    for item in data["output"]:
        content = item.get("content") if isinstance(item, dict) else None
        if not isinstance(content, list):
            continue
        for part in content:
            if not isinstance(part, dict):
                continue
            text = part.get("text")
            if not isinstance(text, str) or not text:
                continue
            if part.get("type") in ("output_text", "text", None):
                texts.append(text)
    return _joined(texts)


def extract_deepseek_text(data: Any) -> str:
    if not isinstance(data, dict) or not isinstance(data.get("choices"), list):
        return ""
    texts = []
    for choice in data["choices"]:
        message = choice.get("message") if isinstance(choice, dict) else None
        content = message.get("content") if isinstance(message, dict) else None
        if isinstance(content, str) and content:
            texts.append(content)
    return _joined(texts)


def extract_anthropic_text(data: Any) -> str:
    if not isinstance(data, dict) or not isinstance(data.get("content"), list):
        return ""
    return _joined(
        block["text"]
        for block in data["content"]
        if isinstance(block, dict) and block.get("type") == "text" and isinstance(block.get("text"), str)
    )


def build_openai_request(prompt: str, options: dict, config: CompareConfig, image: Optional[ImagePayload] = None) -> dict:
    if image is not None:
        content = [
            {"type": "input_text", "text": prompt},
            {"type": "input_image", "image_url": image.data_url},
        ]
    else:
        content = prompt

    payload = {
        "model": config.models["openai"],
        "input": [{"role": "user", "content": content}],
        "max_output_tokens": positive_int_or_default(options.get("maxOutputTokens"), config.default_max_tokens),
        "text": {"format": {"type": "text"}},
    }
    if config.openai_reasoning_effort:
        payload["reasoning"] = {"effort": config.openai_reasoning_effort}
    return payload


def build_deepseek_request(prompt: str, options: dict, config: CompareConfig, image: Optional[ImagePayload] = None) -> dict:
    if image is not None:
        raise UnsupportedCapabilityError("deepseek", config.image_rejection("deepseek"))

    return {
        "model": config.models["deepseek"],
        "messages": [{"role": "user", "content": prompt}],
        "max_tokens": positive_int_or_default(options.get("maxTokens"), config.default_max_tokens),
        "temperature": 0.5,
        "top_p": 1,
        "frequency_penalty": 0,
        "presence_penalty": 0,
        "response_format": {"type": "text"},
        "stream": False,
    }


def build_anthropic_request(prompt: str, options: dict, config: CompareConfig, image: Optional[ImagePayload] = None) -> dict:
    if image is not None:
        content = [
            {"type": "text", "text": prompt},
            {
                "type": "image",
                "source": {"type": "base64", "media_type": image.media_type, "data": image.base64_data},
            },
        ]
    else:
        content = prompt

    return {
        "model": config.models["anthropic"],
        "max_tokens": positive_int_or_default(options.get("maxTokens"), config.default_max_tokens),
        "temperature": 0.5,
        "messages": [{"role": "user", "content": content}],
    }


async def execute_openai(transport: ProviderTransport, config: CompareConfig, prompt: str,
                         options: dict, image: Optional[ImagePayload] = None) -> ProviderOutput:
    data = await transport.send(build_openai_request(prompt, options, config, image))
    return ProviderOutput(model=config.models["openai"], text=extract_openai_text(data))


async def execute_deepseek(transport: ProviderTransport, config: CompareConfig, prompt: str,
                           options: dict, image: Optional[ImagePayload] = None) -> ProviderOutput:
    data = await transport.send(build_deepseek_request(prompt, options, config, image))
    return ProviderOutput(model=config.models["deepseek"], text=extract_deepseek_text(data))


async def execute_anthropic(transport: ProviderTransport, config: CompareConfig, prompt: str,
                            options: dict, image: Optional[ImagePayload] = None) -> ProviderOutput:
    data = await transport.send(build_anthropic_request(prompt, options, config, image))
    return ProviderOutput(model=config.models["anthropic"], text=extract_anthropic_text(data))


Executor = Callable[..., Awaitable[ProviderOutput]]

EXECUTORS: Dict[str, Executor] = {
    "openai": execute_openai,
    "deepseek": execute_deepseek,
    "anthropic": execute_anthropic,
}
