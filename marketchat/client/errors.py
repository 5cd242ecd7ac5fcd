"""
HTTP error translation.

WHAT: Map httpx failures onto the chat exception taxonomy
WHY: Session and like logic branch on error class, never on raw responses
HOW: Structured `code` in the error body first, marker substring as fallback

This is the only place that inspects error payload text.
"""

import httpx

from ..core.config import settings
from ..utils.exceptions import (
    ChatException,
    TransientNetworkError,
    IdempotentConflictError,
    AuthError,
    FatalError,
)
from ..utils.logger import get_logger

logger = get_logger(__name__)

# Error codes meaning "the desired end state already holds"
IDEMPOTENT_CODES = frozenset({"not_liked", "already_unliked", "already_liked"})

# Error codes meaning the token must be refreshed or re-entered
AUTH_CODES = frozenset({"token_not_valid", "not_authenticated", "authentication_failed"})


def _error_code(response: httpx.Response) -> str | None:
    """Pull a structured error code out of a JSON error body, if any."""
    try:
        body = response.json()
    except ValueError:
        return None
    if isinstance(body, dict):
        code = body.get("code") or body.get("error")
        if isinstance(code, str):
            return code.lower()
    return None


def translate_http_error(exc: httpx.HTTPError) -> ChatException:
    """
    Translate an httpx exception into a chat exception.

    Args:
        exc: Exception raised by httpx (transport or status error)

    Returns:
        TransientNetworkError for timeouts, transport failures and 5xx;
        AuthError for 401 or an auth error code;
        IdempotentConflictError for "already in desired state" responses;
        FatalError for everything else.
    """
    if isinstance(exc, httpx.TimeoutException):
        return TransientNetworkError("Request timed out")

    if isinstance(exc, httpx.HTTPStatusError):
        response = exc.response
        status_code = response.status_code
        code = _error_code(response)

        if status_code == 401 or code in AUTH_CODES:
            return AuthError()

        if status_code >= 500:
            return TransientNetworkError(f"Server error: {status_code}", status_code=status_code)

        if code in IDEMPOTENT_CODES:
            return IdempotentConflictError(response.text, conflict=code)

        # Stopgap for backends that only send a human-readable message
        if settings.NOT_LIKED_MARKER in response.text:
            logger.debug("Matched not-liked marker in error body")
            return IdempotentConflictError(response.text, conflict="not_liked")

        return FatalError(
            f"Request failed with status {status_code}: {response.text}",
            status_code=status_code,
            body=response.text
        )

    if isinstance(exc, httpx.TransportError):
        return TransientNetworkError(f"Network error: {exc}")

    return FatalError(str(exc))
