"""
Marketplace backend protocol definition.

WHAT: Abstract interface for the server the conversation core talks to
WHY: Decouple session logic from the HTTP implementation (and fake it in tests)
HOW: Use Protocol to define the async calls the core depends on
"""

from decimal import Decimal
from typing import Literal, Protocol

from ..models.chat import Conversation, ConversationSummary, Message, Review

OfferEndpointAction = Literal["cancel", "accept", "reject"]


class MarketplaceBackend(Protocol):
    """Protocol every backend collaborator must implement."""

    async def get_conversation(self, conversation_id: str) -> Conversation:
        """Fetch participants and listing summary."""
        ...

    async def get_messages(self, conversation_id: str) -> list[Message]:
        """Fetch the full server-authoritative message list."""
        ...

    async def post_message(
        self,
        conversation_id: str,
        content: str,
        *,
        is_offer: bool = False,
        price: Decimal | None = None
    ) -> Message:
        """Create a text message, or an offer when `is_offer` is set."""
        ...

    async def offer_action(self, offer_id: str, action: OfferEndpointAction) -> None:
        """Cancel, accept or reject an offer. No body is returned."""
        ...

    async def post_review(
        self,
        reviewed_user_id: str,
        reviewed_product_id: str,
        rating: int,
        text: str | None = None
    ) -> Review:
        """Submit a review of the seller for a listing."""
        ...

    async def list_reviews(self, product_id: str) -> list[Review]:
        """Reviews already left on a listing."""
        ...

    async def like_listing(self, slug: str, product_id: str) -> None:
        ...

    async def unlike_listing(self, slug: str, product_id: str) -> None:
        ...

    async def list_recent_conversations(self) -> list[ConversationSummary]:
        """The signed-in user's conversations, most recent first."""
        ...

    async def list_conversations(self) -> list[ConversationSummary]:
        """Every conversation the signed-in user takes part in."""
        ...

    async def start_conversation(self, product_id: str) -> ConversationSummary:
        """Open (or reuse) the signed-in buyer's conversation about a listing."""
        ...
