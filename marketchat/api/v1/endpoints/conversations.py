"""
Conversation discovery endpoints.

WHAT: Recent conversations, conversations about a listing, start a conversation
WHY: A shell needs a conversation id before it can open a session
HOW: Caller credentials travel in headers (Authorization: Bearer, X-User-Id);
     each request borrows a backend from the registry and closes it
"""

from fastapi import APIRouter, Depends, Header, status

from ....core.session_registry import SessionRegistry
from ....models.api_schemas import ConversationListResponse, StartConversationRequest
from ....models.chat import AuthContext, ConversationSummary
from ....utils.exceptions import AuthError
from ....utils.logger import get_logger
from .sessions import get_registry

logger = get_logger(__name__)

router = APIRouter()


def get_auth(
    authorization: str = Header(default=""),
    x_user_id: str = Header(default="")
) -> AuthContext:
    """Build the caller's AuthContext from request headers."""
    scheme, _, token = authorization.partition(" ")
    token = token.strip()
    if scheme.lower() != "bearer" or not token or not x_user_id:
        raise AuthError("Please sign in to view your conversations")
    return AuthContext(user_id=x_user_id, access_token=token)


@router.get("/conversations/recent", response_model=ConversationListResponse)
async def recent_conversations(
    auth: AuthContext = Depends(get_auth),
    registry: SessionRegistry = Depends(get_registry)
):
    """The caller's recent conversations (chat list screen)."""
    async with registry.directory(auth) as directory:
        return ConversationListResponse(conversations=await directory.recent())


@router.get("/listings/{product_id}/conversations", response_model=ConversationListResponse)
async def listing_conversations(
    product_id: str,
    auth: AuthContext = Depends(get_auth),
    registry: SessionRegistry = Depends(get_registry)
):
    """Conversations about one listing (seller inbox for that item)."""
    async with registry.directory(auth) as directory:
        return ConversationListResponse(conversations=await directory.for_listing(product_id))


@router.post("/conversations", response_model=ConversationSummary, status_code=status.HTTP_201_CREATED)
async def start_conversation(
    request: StartConversationRequest,
    auth: AuthContext = Depends(get_auth),
    registry: SessionRegistry = Depends(get_registry)
):
    """
    Start a conversation about a listing.

    WHAT: Create the buyer's thread, or return the existing one
    WHY: "Message seller" button on a listing page
    HOW: The returned id is then passed to POST /sessions
    """
    async with registry.directory(auth) as directory:
        conversation = await directory.start(request.listing)
    logger.info(f"User {auth.user_id} started conversation {conversation.id}")
    return conversation
