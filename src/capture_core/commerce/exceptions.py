"""Custom exceptions for the Commerce7 ingestion client."""
from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    """Failure classification callers can branch on without status codes."""

    VALIDATION = "validation"
    AUTHENTICATION = "authentication"
    FORBIDDEN = "forbidden"
    NOT_FOUND = "not_found"
    RATE_LIMITED = "rate_limited"
    UPSTREAM = "upstream"
    UNREACHABLE = "unreachable"
    UNKNOWN = "unknown"


class CommerceClientError(Exception):
    """Base exception for all Commerce7 client errors."""

    kind = ErrorKind.UNKNOWN

    def __init__(self, message: str, status: Optional[int] = None):
        self.status = status
        super().__init__(message)


class CommerceValidationError(CommerceClientError):
    """Raised when Commerce7 rejects the request parameters (HTTP 400/422)."""

    kind = ErrorKind.VALIDATION


class CommerceAuthError(CommerceClientError):
    """Raised when the app id / API key pair is rejected (HTTP 401)."""

    kind = ErrorKind.AUTHENTICATION


class CommerceForbiddenError(CommerceClientError):
    """Raised when credentials lack access to the tenant resource (HTTP 403)."""

    kind = ErrorKind.FORBIDDEN


class CommerceNotFoundError(CommerceClientError):
    """Raised for HTTP 404."""

    kind = ErrorKind.NOT_FOUND


class CommerceRateLimitError(CommerceClientError):
    """Raised for HTTP 429 once retries are exhausted."""

    kind = ErrorKind.RATE_LIMITED

    def __init__(
        self,
        message: str,
        status: Optional[int] = 429,
        retry_after: Optional[float] = None,
    ):
        self.retry_after = retry_after
        super().__init__(message, status)


class CommerceUpstreamError(CommerceClientError):
    """Raised for 5xx responses and unexpected statuses."""

    kind = ErrorKind.UPSTREAM


class CommerceUnreachableError(CommerceClientError):
    """Raised for transport failures (DNS, connection reset, timeout)."""

    kind = ErrorKind.UNREACHABLE


def error_for_status(
    status: int,
    message: str,
    retry_after: Optional[float] = None,
) -> CommerceClientError:
    """Map an HTTP error status to the matching exception instance."""
    if status in (400, 422):
        return CommerceValidationError(f"Invalid request: {message}", status)
    if status == 401:
        return CommerceAuthError("Commerce7 authentication failed", status)
    if status == 403:
        return CommerceForbiddenError("Access denied to Commerce7 resource", status)
    if status == 404:
        return CommerceNotFoundError("Commerce7 resource not found", status)
    if status == 429:
        return CommerceRateLimitError(
            "Commerce7 rate limit exceeded", status, retry_after=retry_after
        )
    return CommerceUpstreamError(f"Commerce7 API error ({status}): {message}", status)
