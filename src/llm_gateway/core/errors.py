"""
LLM gateway error types.
"""

from typing import Any, Dict, Optional


class GatewayError(Exception):
    """Base exception for gateway errors."""

    code = "gateway_error"

    def __init__(self, message: str, provider: str = None, code: str = None):
        self.message = message
        self.provider = provider
        if code:
            self.code = code
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Normalized failure payload."""
        return {
            "error": self.message,
            "code": self.code,
            "provider": self.provider,
        }


class ConfigurationError(GatewayError):
    """Raised for missing credentials or an unregistered provider."""
    code = "configuration_error"


class ValidationError(GatewayError):
    """Raised when a request is rejected before any network call."""
    code = "validation_error"


class ProviderUnavailableError(GatewayError):
    """Raised when no candidate in the selection chain is available."""
    code = "provider_unavailable"


class UnsupportedOperationError(GatewayError):
    """Raised when an adapter lacks the requested capability."""
    code = "unsupported_operation"


class ProviderError(GatewayError):
    """Raised when the vendor API call itself failed."""
    code = "provider_error"

    def __init__(
        self,
        message: str,
        provider: str = None,
        code: str = None,
        status_code: Optional[int] = None,
    ):
        super().__init__(message, provider=provider, code=code)
        self.status_code = status_code


class ProviderConnectionError(ProviderError):
    """Raised when the vendor endpoint cannot be reached."""
    code = "connection_error"


class ProviderAuthenticationError(ProviderError):
    """Raised when the vendor rejects the credential."""
    code = "authentication_error"


class ProviderRateLimitError(ProviderError):
    """Raised when the vendor rate limit is exceeded."""
    code = "rate_limited"

    def __init__(self, message: str, provider: str = None, retry_after: float = None):
        super().__init__(message, provider=provider, status_code=429)
        self.retry_after = retry_after


class CacheError(GatewayError):
    """Raised by cache backends. Never surfaced to callers."""
    code = "cache_error"


class TrackingError(GatewayError):
    """Raised by usage stores. Never surfaced to callers."""
    code = "tracking_error"
