"""Commerce7 ingestion modules."""
from .client import CommerceClient
from .exceptions import (
    CommerceAuthError,
    CommerceClientError,
    CommerceForbiddenError,
    CommerceNotFoundError,
    CommerceRateLimitError,
    CommerceUnreachableError,
    CommerceUpstreamError,
    CommerceValidationError,
    ErrorKind,
)
from .rate_limiter import RequestQueue
from .retry import RequestLifecycle, RequestState, RetryPolicy

__all__ = [
    "CommerceClient",
    "RequestQueue",
    "RetryPolicy",
    "RequestLifecycle",
    "RequestState",
    "ErrorKind",
    "CommerceClientError",
    "CommerceValidationError",
    "CommerceAuthError",
    "CommerceForbiddenError",
    "CommerceNotFoundError",
    "CommerceRateLimitError",
    "CommerceUpstreamError",
    "CommerceUnreachableError",
]
