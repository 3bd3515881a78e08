"""
Exceptions raised inside registrar adapters.

Adapters raise these while talking to a vendor and convert them into
failure envelopes before returning, so callers of the registrar contract
only ever see them through ``error_code`` / ``message`` / ``errors``.
"""


class APIError(Exception):
    """Base exception for all registrar API errors"""

    default_code = "API_ERROR"

    def __init__(
        self,
        message: str,
        status_code: int = None,
        response_data: dict = None,
        error_code: str = None
    ):
        self.message = message
        self.status_code = status_code
        self.response_data = response_data or {}
        self.error_code = error_code or (str(status_code) if status_code else self.default_code)
        super().__init__(self.message)

    def __str__(self):
        if self.status_code:
            return f"{self.__class__.__name__} (HTTP {self.status_code}): {self.message}"
        return f"{self.__class__.__name__}: {self.message}"


# ---------------------------------------------------------------------------
# Transport failures: network trouble, retryable for read-only operations
# ---------------------------------------------------------------------------

class TransportFailure(APIError):
    """Raised when the request did not produce a usable vendor answer"""
    default_code = "TRANSPORT_FAILURE"


class NetworkError(TransportFailure):
    """Raised when network/connection errors or timeouts occur"""
    default_code = "NETWORK_ERROR"


class ServerError(TransportFailure):
    """Raised when the registrar returns a 5xx error"""
    default_code = "SERVER_ERROR"


class RateLimitError(TransportFailure):
    """Raised when the registrar rate limit is exceeded"""
    default_code = "RATE_LIMITED"


class InvalidResponseError(TransportFailure):
    """Raised when a response body cannot be parsed"""
    default_code = "INVALID_RESPONSE"


# ---------------------------------------------------------------------------
# Vendor rejections: a well-formed "no", do not retry without new input
# ---------------------------------------------------------------------------

class VendorRejection(APIError):
    """Raised when the registrar answered with an explicit error"""
    default_code = "VENDOR_REJECTED"


class AuthenticationError(VendorRejection):
    """Raised when API authentication fails"""
    default_code = "AUTHENTICATION_FAILED"


class ValidationError(VendorRejection):
    """Raised when the registrar rejects request fields"""
    default_code = "VALIDATION_FAILED"


class DomainNotAvailableError(VendorRejection):
    """Raised when a domain is not available for purchase"""
    default_code = "DOMAIN_NOT_AVAILABLE"


class DomainNotFoundError(VendorRejection):
    """Raised when a domain or DNS record is not found in the account"""
    default_code = "NOT_FOUND"


class InsufficientFundsError(VendorRejection):
    """Raised when account has insufficient funds for purchase"""
    default_code = "INSUFFICIENT_FUNDS"


class ConflictError(VendorRejection):
    """Raised when the operation conflicts with the current object state"""
    default_code = "CONFLICT"


class UnsupportedOperation(APIError):
    """Raised when the provider has no equivalent capability"""
    default_code = "NOT_SUPPORTED"


RETRYABLE_ERRORS = (NetworkError, ServerError, RateLimitError)
