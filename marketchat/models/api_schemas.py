"""
Pydantic API schemas for the local chat facade.

WHAT: Request and response models for FastAPI
WHY: Type-safe validation and serialization for presentation shells
HOW: Pydantic v2 models; prices travel as strings to keep decimal precision
"""

from typing import List, Literal, Optional
from pydantic import BaseModel, Field

from .chat import ConversationSummary, Message, Offer


# ========== Requests ==========

class OpenSessionRequest(BaseModel):
    """Open a conversation session for a signed-in user."""
    conversation_id: str = Field(..., min_length=1, description="Conversation ID")
    user_id: str = Field(..., min_length=1, description="Signed-in user ID")
    access_token: str = Field(..., min_length=1, description="Bearer token for the marketplace API")
    nickname: str = Field(default="", max_length=50, description="Display name for optimistic messages")


class SendMessageRequest(BaseModel):
    """Plain text message."""
    content: str = Field(..., min_length=1, max_length=5000)


class OfferPriceRequest(BaseModel):
    """Create or amend an offer. Validated by the offer state machine."""
    price: str = Field(..., min_length=1, max_length=20, description="Offer amount, e.g. '50' or '49.99'")


class RespondToOfferRequest(BaseModel):
    """Seller decision on the pending offer."""
    decision: Literal["Accept", "Reject"]


class SubmitReviewRequest(BaseModel):
    """Review of the seller."""
    rating: int = Field(..., description="Stars from 1 to 5")
    text: Optional[str] = Field(default=None, max_length=2000)


class StartConversationRequest(BaseModel):
    """Start (or reuse) the caller's conversation about a listing."""
    listing: str = Field(..., min_length=1, description="Listing product ID")


# ========== Responses ==========

class TimelineResponse(BaseModel):
    """Reconciled conversation state."""
    session_id: str
    conversation_id: str
    role: Literal["buyer", "seller"]
    timeline: List[Message]
    pending_offer: Optional[Offer] = None
    has_reviewed: bool = False


class OfferResponse(BaseModel):
    """Offer after a status change."""
    offer: Offer
    timeline: List[Message]


class HealthResponse(BaseModel):
    app: str
    version: str
    status: str
    active_sessions: int


class ConversationListResponse(BaseModel):
    """Conversation list rows."""
    conversations: List[ConversationSummary]
