"""
Conversation discovery.

WHAT: List the user's recent chats, the chats about one listing, and start a chat
WHY: A shell needs a conversation id before it can open a session
HOW: Read-only backend calls through the retry controller; the listing
     filter runs client-side because the backend has no listing query
"""

from typing import Awaitable, Callable, TypeVar

from ..client.backend import MarketplaceBackend
from ..models.chat import AuthContext, ConversationSummary
from ..utils.exceptions import AuthError, ValidationError
from ..utils.logger import get_logger
from .retry import with_retry

logger = get_logger(__name__)

T = TypeVar("T")


class ConversationDirectory:
    """Conversation lists for the signed-in user."""

    def __init__(
        self,
        backend: MarketplaceBackend,
        auth: AuthContext,
        *,
        max_retries: int | None = None,
        retry_delay: float | None = None
    ):
        self.backend = backend
        self.auth = auth
        self.max_retries = max_retries
        self.retry_delay = retry_delay

    async def recent(self) -> list[ConversationSummary]:
        """Recent conversations, in the order the backend returns them."""
        conversations = await self._call("load recent conversations", self.backend.list_recent_conversations)
        logger.debug(f"Loaded {len(conversations)} recent conversations for {self.auth.user_id}")
        return conversations

    async def for_listing(self, product_id: str) -> list[ConversationSummary]:
        """Conversations about one listing (a seller's inbox for that item)."""
        product_id = self._product_id(product_id)
        conversations = await self._call("load conversations", self.backend.list_conversations)
        return [
            conversation for conversation in conversations
            if conversation.listing.product_id == product_id
        ]

    async def start(self, product_id: str) -> ConversationSummary:
        """
        Start a conversation about a listing, or get the existing one.

        Raises:
            ValidationError: Missing listing id
            ChatException: Request failed after retries
        """
        product_id = self._product_id(product_id)
        return await self._call("start conversation", lambda: self.backend.start_conversation(product_id))

    async def _call(self, label: str, operation: Callable[[], Awaitable[T]]) -> T:
        try:
            return await with_retry(operation, self.max_retries, self.retry_delay, label=label)
        except AuthError:
            logger.warning(f"Authentication required during {label}")
            self.auth.auth_required()
            raise

    @staticmethod
    def _product_id(product_id: str) -> str:
        product_id = str(product_id or "").strip()
        if not product_id:
            raise ValidationError("Listing is required", field="product_id")
        return product_id
