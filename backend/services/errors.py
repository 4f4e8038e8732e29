from typing import Any, Optional


class CompareError(Exception):
    """Base class for everything the compare flow raises on purpose."""


class CompareValidationError(CompareError):
    """Request-level rejection. Raised before any provider is dispatched."""

    def __init__(self, message: str, unsupported_providers: Optional[list] = None):
        super().__init__(message)
        self.message = message
        self.unsupported_providers = list(unsupported_providers or [])


class CredentialMissingError(CompareError):
    def __init__(self, provider: str):
        super().__init__(f"{provider} API key is not configured")
        self.provider = provider


class UnsupportedCapabilityError(CompareError):
    def __init__(self, provider: str, message: str):
        super().__init__(message)
        self.provider = provider


class ImagePreparationError(CompareError):
    pass


class ProviderTimeoutError(CompareError):
    def __init__(self, provider: str, timeout_ms: int):
        super().__init__(f"{provider} request timed out after {timeout_ms}ms")
        self.provider = provider
        self.timeout_ms = timeout_ms


class UpstreamProviderError(CompareError):
    """The provider answered with a failure, or could not be reached at all."""

    def __init__(
        self,
        provider: str,
        message: str,
        status_code: Optional[int] = None,
        payload: Any = None,
    ):
        super().__init__(message)
        self.provider = provider
        self.status_code = status_code
        self.payload = payload


class AdmissionError(Exception):
    def __init__(self, status_code: int, error: str, details: Optional[str] = None, headers: Optional[dict] = None):
        super().__init__(error)
        self.status_code = status_code
        self.error = error
        self.details = details
        self.headers = headers or {}
