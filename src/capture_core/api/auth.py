"""FastAPI authentication dependencies for the capture metrics API."""
import logging
import secrets
from typing import Annotated

from fastapi import HTTPException, Request, Security, status
from fastapi.security import APIKeyHeader


logger = logging.getLogger(__name__)

# Shared secret header checked on every analytics endpoint
api_key_header = APIKeyHeader(name="X-CAPTURE-API-KEY", auto_error=False)


async def require_api_key(
    request: Request,
    api_key: Annotated[str | None, Security(api_key_header)] = None,
) -> str:
    """Validate the X-CAPTURE-API-KEY header against the key loaded at startup.

    Args:
        request: Incoming request; its app carries ``state.api_key``
        api_key: API key from X-CAPTURE-API-KEY header (optional)

    Returns:
        Validated API key

    Raises:
        HTTPException: 503 if no key was configured at startup,
            401 if the header is missing or does not match
    """
    expected_key = getattr(request.app.state, "api_key", None)

    if not expected_key:
        logger.error("CAPTURE_API_KEY not configured; rejecting analytics request")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="API key not configured",
        )

    # Same 401 for missing and wrong keys
    if not api_key or not secrets.compare_digest(api_key, expected_key):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid API key",
            headers={"WWW-Authenticate": "API-Key"},
        )

    return api_key
