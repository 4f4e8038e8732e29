import json
from typing import Any, Optional, Sequence

from models.schemas import CompareRequest
from services.errors import CompareValidationError
from settings import SUPPORTED_PROVIDERS

OMITTED = object()


def _token_label(value: Any) -> str:
    """Render a non-string provider token the way it would read in JSON."""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    try:
        return json.dumps(value)
    except (TypeError, ValueError):
        return str(value)


def normalize_providers(providers: Any = OMITTED, supported: Sequence[str] = SUPPORTED_PROVIDERS):
    """
    Returns (providers, unsupported_providers).

    Omitted -> every supported provider in canonical order. An explicit null is
    not an omission and fails the array check. Entries are lowercased and
    trimmed, blanks are skipped, duplicates keep their first position, and
    unknown tokens are reported back untouched.
    """
    if providers is OMITTED:
        return list(supported), []

    if not isinstance(providers, list):
        raise CompareValidationError('"providers" must be an array when provided.')

    normalized: list[str] = []
    unsupported: list[str] = []
    for provider in providers:
        if not isinstance(provider, str):
            unsupported.append(_token_label(provider))
            continue

        key = provider.strip().lower()
        if not key:
            continue
        if key not in supported:
            unsupported.append(provider)
            continue
        if key not in normalized:
            normalized.append(key)

    if not normalized:
        raise CompareValidationError(
            'At least one supported provider is required in "providers".',
            unsupported_providers=unsupported,
        )
    return normalized, unsupported


def parse_compare_request(body: Any, supported: Sequence[str] = SUPPORTED_PROVIDERS) -> CompareRequest:
    if body is None:
        body = {}
    if not isinstance(body, dict):
        raise CompareValidationError("Request body must be a JSON object.")

    prompt = body.get("prompt")
    if not isinstance(prompt, str) or not prompt.strip():
        raise CompareValidationError('"prompt" is required and must be a non-empty string.')

    providers, unsupported = normalize_providers(body.get("providers", OMITTED), supported)

    provider_options = body.get("providerOptions")
    if not isinstance(provider_options, dict):
        provider_options = {}

    image_url: Optional[str] = None
    if "imageUrl" in body:
        raw = body["imageUrl"]
        if not isinstance(raw, str) or not raw.strip():
            raise CompareValidationError(
                '"imageUrl" must be a non-empty string when provided.',
                unsupported_providers=unsupported,
            )
        image_url = raw.strip()

    return CompareRequest(
        prompt=prompt.strip(),
        providers=tuple(providers),
        image_url=image_url,
        provider_options=provider_options,
        unsupported_providers=tuple(unsupported),
    )
