"""
Conversation session endpoints.

WHAT: HTTP access to ConversationSession operations
WHY: Let a presentation shell open a chat, send, negotiate and review
HOW: FastAPI router over the session registry; domain errors are
     translated by the registered exception handlers
"""

from fastapi import APIRouter, Depends, status

from ....core.session_registry import SessionRegistry, session_registry
from ....models.api_schemas import (
    OpenSessionRequest,
    SendMessageRequest,
    OfferPriceRequest,
    RespondToOfferRequest,
    SubmitReviewRequest,
    TimelineResponse,
    OfferResponse,
)
from ....models.chat import AuthContext
from ....services.conversation_session import ConversationSession
from ....utils.logger import get_logger

logger = get_logger(__name__)

router = APIRouter()


def get_registry() -> SessionRegistry:
    """Registry dependency (overridden in tests)."""
    return session_registry


def _timeline_response(session_id: str, session: ConversationSession) -> TimelineResponse:
    return TimelineResponse(
        session_id=session_id,
        conversation_id=session.conversation_id,
        role=session.role,
        timeline=session.timeline,
        pending_offer=session.pending_offer,
        has_reviewed=session.has_reviewed,
    )


@router.post("/sessions", response_model=TimelineResponse, status_code=status.HTTP_201_CREATED)
async def open_session(request: OpenSessionRequest, registry: SessionRegistry = Depends(get_registry)):
    """
    Open a conversation session.

    WHAT: Load conversation + messages and start polling
    WHY: Entry point for a chat screen
    HOW: Build an AuthContext for the caller and register the session
    """
    auth = AuthContext(
        user_id=request.user_id,
        access_token=request.access_token,
        nickname=request.nickname,
    )
    session_id, session = await registry.open(request.conversation_id, auth)
    return _timeline_response(session_id, session)


@router.get("/sessions/{session_id}/timeline", response_model=TimelineResponse)
async def get_timeline(session_id: str, registry: SessionRegistry = Depends(get_registry)):
    """Current reconciled timeline (no network call)."""
    return _timeline_response(session_id, registry.get(session_id))


@router.post("/sessions/{session_id}/refresh", response_model=TimelineResponse)
async def refresh(session_id: str, registry: SessionRegistry = Depends(get_registry)):
    """Pull the latest server snapshot now."""
    session = registry.get(session_id)
    await session.refresh()
    return _timeline_response(session_id, session)


@router.post("/sessions/{session_id}/messages", response_model=TimelineResponse)
async def send_message(
    session_id: str,
    request: SendMessageRequest,
    registry: SessionRegistry = Depends(get_registry)
):
    session = registry.get(session_id)
    await session.send_text(request.content)
    return _timeline_response(session_id, session)


@router.post("/sessions/{session_id}/offers", response_model=TimelineResponse)
async def create_offer(
    session_id: str,
    request: OfferPriceRequest,
    registry: SessionRegistry = Depends(get_registry)
):
    """Buyer makes an offer."""
    session = registry.get(session_id)
    await session.create_offer(request.price)
    return _timeline_response(session_id, session)


@router.put("/sessions/{session_id}/offers", response_model=TimelineResponse)
async def amend_offer(
    session_id: str,
    request: OfferPriceRequest,
    registry: SessionRegistry = Depends(get_registry)
):
    """Buyer replaces the pending offer with a new price."""
    session = registry.get(session_id)
    await session.amend_offer(request.price)
    return _timeline_response(session_id, session)


@router.delete("/sessions/{session_id}/offers", response_model=OfferResponse)
async def cancel_offer(session_id: str, registry: SessionRegistry = Depends(get_registry)):
    """Buyer withdraws the pending offer."""
    session = registry.get(session_id)
    offer = await session.cancel_offer()
    return OfferResponse(offer=offer, timeline=session.timeline)


@router.post("/sessions/{session_id}/offers/respond", response_model=OfferResponse)
async def respond_to_offer(
    session_id: str,
    request: RespondToOfferRequest,
    registry: SessionRegistry = Depends(get_registry)
):
    """Seller accepts or rejects the pending offer."""
    session = registry.get(session_id)
    offer = await session.respond_to_offer(request.decision)
    return OfferResponse(offer=offer, timeline=session.timeline)


@router.post("/sessions/{session_id}/reviews", response_model=TimelineResponse)
async def submit_review(
    session_id: str,
    request: SubmitReviewRequest,
    registry: SessionRegistry = Depends(get_registry)
):
    """Buyer reviews the seller after a completed sale."""
    session = registry.get(session_id)
    await session.submit_review(request.rating, request.text)
    return _timeline_response(session_id, session)


@router.delete("/sessions/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
async def close_session(session_id: str, registry: SessionRegistry = Depends(get_registry)):
    """Dispose a session and stop its refresh timer."""
    if not await registry.close(session_id):
        registry.get(session_id)  # raises ConversationNotFoundError
