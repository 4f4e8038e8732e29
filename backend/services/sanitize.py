import json
import logging
from typing import Any, Optional

from services.errors import (
    CredentialMissingError,
    ImagePreparationError,
    ProviderTimeoutError,
    UnsupportedCapabilityError,
    UpstreamProviderError,
)

logger = logging.getLogger(__name__)

PRODUCTION_ERROR_DETAILS = "Upstream provider request failed. Check server logs for details."

# Messages we author ourselves are already client-safe.
_OWN_ERRORS = (ProviderTimeoutError, CredentialMissingError, UnsupportedCapabilityError, ImagePreparationError)


def _nonblank(value: Any) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def extract_upstream_message(payload: Any) -> Optional[str]:
    """Pull a human message out of the usual provider error bodies."""
    if payload is None:
        return None
    if isinstance(payload, str):
        return _nonblank(payload)
    if not isinstance(payload, dict):
        return None

    error = payload.get("error")
    return (
        _nonblank(error)
        or _nonblank(payload.get("message"))
        or (_nonblank(error.get("message")) if isinstance(error, dict) else None)
    )


class ErrorSanitizer:
    def __init__(self, production: bool = False):
        self.production = production

    def __call__(self, error: BaseException) -> str:
        if isinstance(error, _OWN_ERRORS):
            return str(error)

        payload = error.payload if isinstance(error, UpstreamProviderError) else None

        if self.production:
            return extract_upstream_message(payload) or PRODUCTION_ERROR_DETAILS

        if payload:
            if isinstance(payload, str):
                return payload
            return json.dumps(payload, indent=2)
        return str(error) or "Unknown error"


def log_provider_error(context: str, error: BaseException):
    """Full diagnostic detail for the server log. Never returned to the client."""
    status = getattr(error, "status_code", None) or "no-status"
    logger.error("%s: %s %s", context, status, str(error) or "Unknown error")
    payload = getattr(error, "payload", None)
    if payload is not None:
        logger.error("%s providerDetails: %s", context, payload)
    logger.debug("%s stack:", context, exc_info=error)
