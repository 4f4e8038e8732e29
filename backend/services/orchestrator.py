"""
Fan one compare request out to every selected provider at once.

Each provider runs as its own task and always settles into exactly one
ProviderResult. Gating happens before dispatch and never touches the network:
missing credential, then image capability, then image preparation outcome.
Dispatched calls race the per-request deadline. Results are gathered
positionally, so `results[i]` always belongs to `providers[i]`.

The image, when one is needed, is prepared once in a shared task. Only
image-dependent providers wait on it; the rest start immediately.
"""

import asyncio
import logging
import time
from typing import Mapping, Optional, Protocol

from models.schemas import CompareRequest, CompareRequestEcho, CompareResponse, ProviderResult
from services.deadline import run_with_deadline
from services.errors import (
    CredentialMissingError,
    ImagePreparationError,
    ProviderTimeoutError,
    UnsupportedCapabilityError,
)
from services.executors import EXECUTORS, positive_int_or_default
from services.image_prep import ImageFetcher, ImagePayload, ImagePreparer
from services.sanitize import ErrorSanitizer, log_provider_error
from services.transports import ProviderTransport
from settings import CompareConfig

logger = logging.getLogger(__name__)


class AvailabilityOracle(Protocol):
    def is_available(self, provider: str) -> bool: ...


class StaticAvailability:
    def __init__(self, availability: Mapping[str, bool]):
        self._availability = dict(availability)

    def is_available(self, provider: str) -> bool:
        return bool(self._availability.get(provider))


class CompareOrchestrator:
    def __init__(
        self,
        config: CompareConfig,
        transports: Mapping[str, ProviderTransport],
        availability: AvailabilityOracle,
        image_fetcher: ImageFetcher,
        sanitizer: Optional[ErrorSanitizer] = None,
    ):
        self.config = config
        self.transports = dict(transports)
        self.availability = availability
        self.image_preparer = ImagePreparer(image_fetcher, max_bytes=config.max_image_bytes)
        self.sanitizer = sanitizer or ErrorSanitizer()

    def resolve_timeout_ms(self, request: CompareRequest) -> int:
        return positive_int_or_default(request.provider_options.get("timeoutMs"), self.config.default_timeout_ms)

    def _can_dispatch(self, provider: str) -> bool:
        return provider in self.transports and self.availability.is_available(provider)

    def _needs_image(self, provider: str, request: CompareRequest) -> bool:
        return bool(request.image_url) and self.config.supports_image(provider) and self._can_dispatch(provider)

    async def compare(self, request: CompareRequest) -> CompareResponse:
        timeout_ms = self.resolve_timeout_ms(request)

        image_task = None
        if any(self._needs_image(p, request) for p in request.providers):
            image_task = asyncio.ensure_future(self._prepare_image(request.image_url))

        try:
            results = await asyncio.gather(*(
                self._run_provider(provider, request, timeout_ms, image_task)
                for provider in request.providers
            ))
        finally:
            if image_task is not None:
                if not image_task.done():
                    image_task.cancel()
                elif not image_task.cancelled():
                    image_task.exception()

        return CompareResponse(
            request=CompareRequestEcho(
                prompt=request.prompt,
                image_url=request.image_url,
                providers=list(request.providers),
                timeout_ms=timeout_ms,
                unsupported_providers=list(request.unsupported_providers),
            ),
            results=list(results),
        )

    async def _prepare_image(self, image_url: str) -> ImagePayload:
        try:
            payload = await self.image_preparer.prepare(image_url)
        except ImagePreparationError as e:
            logger.warning("[Compare] image preparation failed: %s", e)
            raise
        except Exception as e:
            logger.error("[Compare] image preparation crashed: %s", e, exc_info=True)
            raise ImagePreparationError("Image preparation failed.") from e
        logger.debug("[Compare] image ready: %s, %d bytes", payload.media_type, payload.size)
        return payload

    def _error(self, provider: str, error: BaseException, latency_ms: int = 0) -> ProviderResult:
        return ProviderResult(
            provider=provider,
            status="error",
            latency_ms=latency_ms,
            error=self.sanitizer(error),
        )

    async def _run_provider(self, provider: str, request: CompareRequest, timeout_ms: int,
                            image_task: Optional[asyncio.Future]) -> ProviderResult:
        if not self._can_dispatch(provider):
            return self._error(provider, CredentialMissingError(provider))

        image = None
        if request.image_url:
            rejection = self.config.image_rejection(provider)
            if rejection:
                return self._error(provider, UnsupportedCapabilityError(provider, rejection))
            try:
                image = await image_task
            except ImagePreparationError as e:
                return self._error(provider, e)

        options = request.provider_options.get(provider)
        if not isinstance(options, dict):
            options = {}

        executor = EXECUTORS[provider]
        started = time.monotonic()
        try:
            output = await run_with_deadline(
                executor(self.transports[provider], self.config, request.prompt, options, image),
                timeout_ms,
                provider,
            )
        except ProviderTimeoutError as e:
            latency_ms = int((time.monotonic() - started) * 1000)
            logger.warning("[Compare] %s", e)
            return self._error(provider, e, latency_ms)
        except Exception as e:
            latency_ms = int((time.monotonic() - started) * 1000)
            log_provider_error(f"{provider} API Error at /compare", e)
            return self._error(provider, e, latency_ms)

        latency_ms = int((time.monotonic() - started) * 1000)
        logger.debug("[Compare] %s succeeded in %dms (%d chars)", provider, latency_ms, len(output.text))
        return ProviderResult(
            provider=provider,
            status="success",
            latency_ms=latency_ms,
            model=output.model,
            text=output.text,
        )
