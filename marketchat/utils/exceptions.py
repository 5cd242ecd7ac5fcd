"""
Chat and negotiation exceptions.

WHAT: Domain-specific exceptions with machine-readable error codes
WHY: Callers branch on the error class, presentation maps it to a notice
HOW: ChatException base with code/details, one subclass per failure kind
"""

from typing import Optional, Any


class ChatException(Exception):
    """Base class for all conversation-core exceptions."""

    def __init__(self, message: str, code: str, details: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details


# ========== Local validation (never reaches the network) ==========

class ValidationError(ChatException):
    """Raised for invalid input such as a malformed price or empty text."""

    def __init__(self, message: str, field: Optional[str] = None, code: str = "VALIDATION_ERROR"):
        super().__init__(
            message=message,
            code=code,
            details={"field": field} if field else None
        )
        self.field = field


class PermissionDeniedError(ValidationError):
    """Raised when a participant attempts an action reserved for the other role."""

    def __init__(self, action: str, role: str, message: Optional[str] = None):
        super().__init__(
            message=message or f"A {role} is not allowed to {action.lower()} offers",
            code="PERMISSION_DENIED"
        )
        self.details = {"action": action, "role": role}
        self.action = action
        self.role = role


class InvalidTransitionError(ValidationError):
    """Raised when an offer action is not valid from the offer's current state."""

    def __init__(self, action: str, current_status: Optional[str]):
        state = current_status or "no offer"
        super().__init__(
            message=f"Cannot {action.lower()} from state: {state}",
            code="INVALID_TRANSITION"
        )
        self.details = {"action": action, "current_status": current_status}


class ReviewNotAllowedError(ValidationError):
    """Raised when review eligibility rules are not met."""

    def __init__(self, reason: str):
        super().__init__(message=reason, code="REVIEW_NOT_ALLOWED")


# ========== Network-side failures ==========

class TransientNetworkError(ChatException):
    """Timeout, connection failure or 5xx; safe to retry."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(
            message=message,
            code="NETWORK_ERROR",
            details={"status_code": status_code} if status_code else None
        )
        self.status_code = status_code


class IdempotentConflictError(ChatException):
    """The server refused because the desired end state already holds."""

    def __init__(self, message: str, conflict: str):
        super().__init__(
            message=message,
            code="IDEMPOTENT_CONFLICT",
            details={"conflict": conflict}
        )
        self.conflict = conflict


class AuthError(ChatException):
    """Access token missing, expired or rejected (401)."""

    def __init__(self, message: str = "Please sign in to continue"):
        super().__init__(message=message, code="AUTH_REQUIRED")


class FatalError(ChatException):
    """Any other failed request (4xx, malformed payload)."""

    def __init__(self, message: str, status_code: Optional[int] = None, body: Optional[Any] = None):
        super().__init__(
            message=message,
            code="REQUEST_FAILED",
            details={"status_code": status_code, "body": body}
        )
        self.status_code = status_code


class ConversationNotFoundError(ChatException):
    """Raised when a conversation or facade session does not exist."""

    def __init__(self, conversation_id: str):
        super().__init__(
            message=f"Conversation not found: {conversation_id}",
            code="CONVERSATION_NOT_FOUND",
            details={"conversation_id": conversation_id}
        )


class SessionClosedError(ChatException):
    """Raised when an operation targets a disposed conversation session."""

    def __init__(self, conversation_id: str):
        super().__init__(
            message=f"Conversation session already closed: {conversation_id}",
            code="SESSION_CLOSED",
            details={"conversation_id": conversation_id}
        )
