import logging
import math
import time
from typing import Callable, Optional

from fastapi import Request, Response

from services.errors import AdmissionError

logger = logging.getLogger(__name__)


def get_request_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for", "")
    if forwarded.strip():
        return forwarded.split(",")[0].strip()
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


class ApiAccessCheck:
    """FastAPI dependency. An empty allow-list lets every request through."""

    def __init__(self, keys_provider: Callable[[], list]):
        self._keys_provider = keys_provider

    def __call__(self, request: Request):
        allow_list = [k for k in self._keys_provider() if k]
        if not allow_list:
            return

        supplied = request.headers.get("x-api-key", "").strip()
        if not supplied:
            auth = request.headers.get("authorization", "")
            if auth.startswith("Bearer "):
                supplied = auth[7:].strip()

        if not supplied:
            raise AdmissionError(
                401,
                "Missing API access key",
                "Provide X-API-Key or Authorization: Bearer <token>.",
            )
        if supplied not in allow_list:
            logger.warning("Rejected request with invalid API access key")
            raise AdmissionError(403, "Invalid API access key")


class IpRateLimiter:
    """Fixed-window request budget per client IP."""

    def __init__(self, window_ms: int = 60_000, max_requests: int = 60, label: str = "api",
                 clock: Optional[Callable[[], float]] = None):
        self.window_ms = window_ms
        self.max_requests = max_requests
        self.label = label
        self._clock = clock or time.monotonic
        self._entries: dict = {}
        self._next_sweep_ms = 0.0

    def reset(self):
        self._entries.clear()
        self._next_sweep_ms = 0.0

    def configure(self, window_ms: int, max_requests: int):
        self.window_ms = window_ms
        self.max_requests = max_requests
        self.reset()

    def _sweep(self, now_ms: float):
        if now_ms < self._next_sweep_ms:
            return
        expired = [ip for ip, entry in self._entries.items() if now_ms >= entry["reset_at"]]
        for ip in expired:
            del self._entries[ip]
        self._next_sweep_ms = now_ms + self.window_ms

    def __call__(self, request: Request, response: Response):
        now_ms = self._clock() * 1000
        self._sweep(now_ms)
        ip = get_request_ip(request)

        entry = self._entries.get(ip)
        if entry is None or now_ms >= entry["reset_at"]:
            entry = {"count": 1, "reset_at": now_ms + self.window_ms}
            self._entries[ip] = entry
        else:
            entry["count"] += 1

        remaining = max(self.max_requests - entry["count"], 0)
        retry_after = max(1, math.ceil((entry["reset_at"] - now_ms) / 1000))
        headers = {
            "X-RateLimit-Limit": str(self.max_requests),
            "X-RateLimit-Remaining": str(remaining),
            "X-RateLimit-Reset": str(retry_after),
        }

        if entry["count"] > self.max_requests:
            logger.warning("Rate limit exceeded (%s) ip=%s path=%s method=%s",
                           self.label, ip, request.url.path, request.method)
            headers["Retry-After"] = str(retry_after)
            raise AdmissionError(
                429,
                "Rate limit exceeded",
                f"Too many requests. Retry in {retry_after} seconds.",
                headers=headers,
            )

        for name, value in headers.items():
            response.headers[name] = value
