"""
Image resolution shared by every image-capable provider in one compare request.

An `imageUrl` is either an inline `data:` URL or an absolute http(s) URL. Both
paths end in a single immutable `ImagePayload` which carries the two shapes the
providers consume: a data URL (OpenAI) and base64 + media type (Anthropic).
Inline references never touch the network.
"""

import base64
import binascii
import logging
import re
from dataclasses import dataclass
from typing import Optional, Protocol
from urllib.parse import urlparse

import httpx

from services.errors import ImagePreparationError
from settings import IMAGE_FETCH_TIMEOUT_S, MAX_IMAGE_BYTES

logger = logging.getLogger(__name__)

_DATA_URL_RE = re.compile(r"^data:(?P<media_type>[^;,]*)(?P<params>(?:;[^;,]*)*),(?P<data>.*)$", re.DOTALL | re.IGNORECASE)


@dataclass(frozen=True)
class ImagePayload:
    media_type: str
    data: bytes
    base64_data: str

    @classmethod
    def from_bytes(cls, media_type: str, data: bytes) -> "ImagePayload":
        return cls(media_type=media_type, data=data, base64_data=base64.b64encode(data).decode("ascii"))

    @property
    def data_url(self) -> str:
        return f"data:{self.media_type};base64,{self.base64_data}"

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass(frozen=True)
class FetchedImage:
    media_type: str
    content: bytes


class ImageFetcher(Protocol):
    async def fetch(self, url: str) -> FetchedImage: ...


def _media_type(raw: Optional[str]) -> str:
    return (raw or "").split(";")[0].strip().lower()


class HttpxImageFetcher:
    """Bounded GET: gives up after `timeout_s` and stops reading past `max_bytes`."""

    def __init__(
        self,
        timeout_s: float = IMAGE_FETCH_TIMEOUT_S,
        max_bytes: int = MAX_IMAGE_BYTES,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.timeout_s = timeout_s
        self.max_bytes = max_bytes
        self._transport = transport

    async def fetch(self, url: str) -> FetchedImage:
        async with httpx.AsyncClient(
            timeout=self.timeout_s,
            follow_redirects=True,
            transport=self._transport,
        ) as client:
            async with client.stream("GET", url, headers={"Accept": "image/*"}) as response:
                if response.status_code != 200:
                    raise ImagePreparationError(f"Image URL returned HTTP {response.status_code}.")

                declared = response.headers.get("content-length")
                if declared and declared.isdigit() and int(declared) > self.max_bytes:
                    raise ImagePreparationError(f"Image exceeds the {self.max_bytes} byte limit.")

                chunks = []
                received = 0
                async for chunk in response.aiter_bytes():
                    received += len(chunk)
                    if received > self.max_bytes:
                        raise ImagePreparationError(f"Image exceeds the {self.max_bytes} byte limit.")
                    chunks.append(chunk)

                return FetchedImage(
                    media_type=_media_type(response.headers.get("content-type")),
                    content=b"".join(chunks),
                )


class ImagePreparer:
    def __init__(self, fetcher: ImageFetcher, max_bytes: int = MAX_IMAGE_BYTES):
        self.fetcher = fetcher
        self.max_bytes = max_bytes

    async def prepare(self, image_url: str) -> ImagePayload:
        if image_url[:5].lower() == "data:":
            return self._decode_inline(image_url)
        return await self._fetch_remote(image_url)

    def _check(self, media_type: str, data: bytes) -> ImagePayload:
        if not media_type.startswith("image/"):
            raise ImagePreparationError(
                f"Image media type must start with image/ (got {media_type or 'none'})."
            )
        if not data:
            raise ImagePreparationError("Image payload is empty.")
        if len(data) > self.max_bytes:
            raise ImagePreparationError(f"Image exceeds the {self.max_bytes} byte limit.")
        return ImagePayload.from_bytes(media_type, data)

    def _decode_inline(self, image_url: str) -> ImagePayload:
        match = _DATA_URL_RE.match(image_url)
        if not match:
            raise ImagePreparationError("Inline image is not a valid data URL.")

        params = [p.strip().lower() for p in match.group("params").split(";") if p.strip()]
        if "base64" not in params:
            raise ImagePreparationError("Inline image data URL must be base64 encoded.")

        encoded = "".join(match.group("data").split())
        # base64 inflates by 4/3, reject before decoding anything oversized
        if len(encoded) * 3 // 4 > self.max_bytes + 2:
            raise ImagePreparationError(f"Image exceeds the {self.max_bytes} byte limit.")
        try:
            data = base64.b64decode(encoded, validate=True)
        except (binascii.Error, ValueError):
            raise ImagePreparationError("Inline image data is not valid base64.")

        return self._check(_media_type(match.group("media_type")), data)

    async def _fetch_remote(self, image_url: str) -> ImagePayload:
        parsed = urlparse(image_url)
        if parsed.scheme.lower() not in ("http", "https") or not parsed.netloc:
            raise ImagePreparationError("imageUrl must be a data URL or an absolute http(s) URL.")

        try:
            fetched = await self.fetcher.fetch(image_url)
        except ImagePreparationError:
            raise
        except httpx.TimeoutException:
            raise ImagePreparationError("Timed out fetching image URL.")
        except httpx.HTTPError as e:
            logger.warning("[Image] fetch failed for %s: %s", parsed.netloc, e)
            raise ImagePreparationError(f"Failed to fetch image URL ({type(e).__name__}).")

        return self._check(_media_type(fetched.media_type), fetched.content)
