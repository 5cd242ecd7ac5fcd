"""
Error translation for presentation layers.

WHAT: Turn chat exceptions into user-facing notices and HTTP responses
WHY: Consistent messages, status codes and sign-in redirects everywhere
HOW: One notice builder, FastAPI exception handlers built on top of it
"""

from dataclasses import dataclass
from datetime import datetime

from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from ..utils.exceptions import (
    ChatException,
    ValidationError,
    PermissionDeniedError,
    InvalidTransitionError,
    ReviewNotAllowedError,
    TransientNetworkError,
    IdempotentConflictError,
    AuthError,
    ConversationNotFoundError,
    SessionClosedError,
)
from ..utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class ErrorNotice:
    """What the user should see after a failed action."""
    title: str
    message: str
    redirect_to_sign_in: bool = False


def describe_error(exc: ChatException) -> ErrorNotice:
    """
    Build the notice shown for an exception.

    Validation problems show their own message; network-side failures get
    a generic retry prompt; auth failures ask for a sign-in redirect.
    """
    if isinstance(exc, PermissionDeniedError):
        return ErrorNotice(title="Not Allowed", message=exc.message)
    if isinstance(exc, ReviewNotAllowedError):
        return ErrorNotice(title="Review Unavailable", message=exc.message)
    if isinstance(exc, InvalidTransitionError):
        return ErrorNotice(title="Offer Unavailable", message=exc.message)
    if isinstance(exc, ValidationError):
        title = "Invalid Amount" if exc.field == "price" else "Invalid Input"
        return ErrorNotice(title=title, message=exc.message)
    if isinstance(exc, AuthError):
        return ErrorNotice(
            title="Authentication Required",
            message="Please sign in to continue",
            redirect_to_sign_in=True
        )
    if isinstance(exc, ConversationNotFoundError):
        return ErrorNotice(title="Not Found", message="This conversation is no longer available")
    return ErrorNotice(title="Error", message="Something went wrong. Please try again.")


def _status_for(exc: ChatException) -> int:
    if isinstance(exc, PermissionDeniedError):
        return status.HTTP_403_FORBIDDEN
    if isinstance(exc, (InvalidTransitionError, ReviewNotAllowedError, IdempotentConflictError)):
        return status.HTTP_409_CONFLICT
    if isinstance(exc, ValidationError):
        return status.HTTP_400_BAD_REQUEST
    if isinstance(exc, AuthError):
        return status.HTTP_401_UNAUTHORIZED
    if isinstance(exc, (ConversationNotFoundError, SessionClosedError)):
        return status.HTTP_404_NOT_FOUND
    if isinstance(exc, TransientNetworkError):
        return status.HTTP_503_SERVICE_UNAVAILABLE
    return status.HTTP_502_BAD_GATEWAY


async def chat_exception_handler(request: Request, exc: ChatException):
    """
    Handle any ChatException.

    WHAT: Domain error raised by a session operation
    WHY: Facade clients need the code, a status and a displayable notice
    HOW: Map class to status code, attach the user notice
    """
    status_code = _status_for(exc)
    notice = describe_error(exc)

    if status_code >= 500:
        logger.error(f"Chat exception: {exc.code} - {exc.message}")
    else:
        logger.warning(f"Chat exception: {exc.code} - {exc.message}")

    return JSONResponse(
        status_code=status_code,
        content={
            "error": exc.code,
            "message": exc.message,
            "details": exc.details,
            "notice": {
                "title": notice.title,
                "message": notice.message,
                "redirect_to_sign_in": notice.redirect_to_sign_in,
            },
            "timestamp": datetime.now().isoformat()
        }
    )


async def validation_error_handler(request: Request, exc: RequestValidationError):
    """
    Handle FastAPI RequestValidationError.

    WHAT: Request body failed schema validation
    WHY: Invalid request payload
    HOW: Return 400 with field errors
    """
    logger.warning(f"Validation error: {exc.errors()}")

    cleaned_errors = [
        {
            "type": error.get("type"),
            "loc": error.get("loc"),
            "msg": error.get("msg"),
        }
        for error in exc.errors()
    ]

    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "error": "VALIDATION_ERROR",
            "message": "Request validation failed",
            "details": cleaned_errors,
            "timestamp": datetime.now().isoformat()
        }
    )


def register_exception_handlers(app):
    """
    Register all exception handlers with FastAPI app.

    Args:
        app: FastAPI application instance
    """
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(ChatException, chat_exception_handler)

    logger.info("Exception handlers registered")
