"""
HTTP implementation of the marketplace backend.

WHAT: Talks to the marketplace REST API over httpx
WHY: Concrete collaborator for conversation sessions and like toggles
HOW: Async httpx client, bearer token from the shared AuthContext,
     every failure translated into the chat exception taxonomy
"""

from decimal import Decimal
from typing import Any

import httpx

from .backend import OfferEndpointAction
from .errors import translate_http_error
from .wire import (
    conversation_from_wire,
    conversation_summary_from_wire,
    message_from_wire,
    message_request,
    messages_from_wire,
    review_from_wire,
    review_request,
)
from ..core.config import settings
from ..models.chat import AuthContext, Conversation, ConversationSummary, Message, Review
from ..utils.exceptions import AuthError, ConversationNotFoundError, FatalError
from ..utils.logger import get_logger

logger = get_logger(__name__)


class HttpMarketplaceClient:
    """Marketplace REST client. Does not retry; callers wrap calls in `with_retry`."""

    def __init__(
        self,
        auth: AuthContext,
        base_url: str | None = None,
        timeout: float | None = None,
        client: httpx.AsyncClient | None = None
    ):
        """
        Initialize the client.

        Args:
            auth: Shared auth context; its token is read on every request
            base_url: API root (defaults to settings.API_BASE_URL)
            timeout: Read timeout in seconds (defaults to settings.API_TIMEOUT)
            client: Pre-built httpx client (tests, connection sharing)
        """
        self.auth = auth
        self.base_url = (base_url or settings.API_BASE_URL).rstrip("/")
        self.timeout = timeout or settings.API_TIMEOUT
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(5.0, read=self.timeout),
            limits=httpx.Limits(max_keepalive_connections=5, max_connections=10)
        )

    def _headers(self) -> dict[str, str]:
        if not self.auth.access_token:
            raise AuthError("Please sign in to view this conversation")
        return {
            "Authorization": f"Bearer {self.auth.access_token}",
            "Content-Type": "application/json",
        }

    async def _request(self, method: str, path: str, json: dict[str, Any] | None = None) -> Any:
        """
        Send one request and decode the JSON body.

        Raises:
            ChatException subclass describing the failure
        """
        url = f"{self.base_url}{path}"
        logger.debug(f"{method} {url}")
        try:
            response = await self.client.request(method, url, json=json, headers=self._headers())
            response.raise_for_status()
        except httpx.HTTPError as e:
            error = translate_http_error(e)
            logger.warning(f"{method} {path} failed: {error.code} - {error.message}")
            raise error from e

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            logger.error(f"Invalid JSON from {method} {path}")
            raise FatalError(f"Invalid response format: {e}", status_code=response.status_code) from e

    async def _conversation_request(self, conversation_id: str, path: str) -> Any:
        """GET under a conversation; a 404 means the conversation is gone or not ours."""
        try:
            return await self._request("GET", path)
        except FatalError as e:
            if e.status_code == 404:
                raise ConversationNotFoundError(conversation_id) from e
            raise

    async def get_conversation(self, conversation_id: str) -> Conversation:
        data = await self._conversation_request(conversation_id, f"/chat/conversations/{conversation_id}/")
        try:
            return conversation_from_wire(data)
        except (KeyError, TypeError, ValueError) as e:
            raise FatalError(f"Invalid conversation payload: {e}") from e

    async def get_messages(self, conversation_id: str) -> list[Message]:
        data = await self._conversation_request(
            conversation_id, f"/chat/conversations/{conversation_id}/messages/"
        )
        try:
            messages = messages_from_wire(data or [], conversation_id)
        except (KeyError, TypeError, ValueError) as e:
            raise FatalError(f"Invalid messages payload: {e}") from e
        logger.debug(f"Fetched {len(messages)} messages for conversation {conversation_id}")
        return messages

    async def post_message(
        self,
        conversation_id: str,
        content: str,
        *,
        is_offer: bool = False,
        price: Decimal | None = None
    ) -> Message:
        payload = message_request(
            conversation_id,
            content,
            sender_id=self.auth.user_id,
            is_offer=is_offer,
            price=price
        )
        data = await self._request("POST", "/chat/messages/", json=payload)
        try:
            return message_from_wire(data, conversation_id)
        except (KeyError, TypeError, ValueError) as e:
            raise FatalError(f"Invalid message payload: {e}") from e

    async def offer_action(self, offer_id: str, action: OfferEndpointAction) -> None:
        await self._request("POST", f"/offers/{offer_id}/{action}/", json={})
        logger.info(f"Offer {offer_id} {action} request accepted")

    async def post_review(
        self,
        reviewed_user_id: str,
        reviewed_product_id: str,
        rating: int,
        text: str | None = None
    ) -> Review:
        payload = review_request(reviewed_user_id, reviewed_product_id, rating, text)
        data = await self._request("POST", "/reviews/", json=payload)
        try:
            return review_from_wire(data)
        except (KeyError, TypeError, ValueError) as e:
            raise FatalError(f"Invalid review payload: {e}") from e

    async def list_reviews(self, product_id: str) -> list[Review]:
        data = await self._request("GET", f"/reviews/listing/{product_id}/")
        try:
            return [review_from_wire(item) for item in data or []]
        except (KeyError, TypeError, ValueError) as e:
            raise FatalError(f"Invalid reviews payload: {e}") from e

    async def _summaries(self, path: str) -> list[ConversationSummary]:
        data = await self._request("GET", path)
        try:
            return [conversation_summary_from_wire(item) for item in data or []]
        except (KeyError, TypeError, ValueError) as e:
            raise FatalError(f"Invalid conversations payload: {e}") from e

    async def list_recent_conversations(self) -> list[ConversationSummary]:
        return await self._summaries("/chat/conversations/recent/")

    async def list_conversations(self) -> list[ConversationSummary]:
        return await self._summaries("/chat/conversations/")

    async def start_conversation(self, product_id: str) -> ConversationSummary:
        data = await self._request("POST", "/chat/conversations/", json={"listing": product_id})
        try:
            summary = conversation_summary_from_wire(data, product_id)
        except (KeyError, TypeError, ValueError) as e:
            raise FatalError(f"Invalid conversation payload: {e}") from e
        logger.info(f"Conversation {summary.id} ready for listing {product_id}")
        return summary

    async def like_listing(self, slug: str, product_id: str) -> None:
        await self._request("POST", f"/listings/{slug}/{product_id}/like/")

    async def unlike_listing(self, slug: str, product_id: str) -> None:
        await self._request("DELETE", f"/listings/{slug}/{product_id}/like/")

    async def close(self):
        """Close the HTTP client if this instance created it."""
        if self._owns_client:
            await self.client.aclose()
