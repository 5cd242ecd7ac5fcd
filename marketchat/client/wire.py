"""
Wire format mapping for backend payloads.

WHAT: Convert backend JSON into domain models and requests into JSON
WHY: The backend sends one loose message shape with optional `offer`/`review_data`
HOW: Decide the message kind once here so downstream code sees a tagged union
"""

from decimal import Decimal, InvalidOperation
from typing import Any

from ..models.chat import (
    Conversation,
    ConversationSummary,
    ListingRef,
    Message,
    Offer,
    OfferEventMessage,
    Participant,
    Review,
    ReviewEventMessage,
    TextMessage,
)
from ..utils.logger import get_logger
from ..utils.text import is_review_text, parse_review_body, parse_review_rating

logger = get_logger(__name__)

_CENTS = Decimal("0.01")


def _participant(data: Any) -> Participant:
    if isinstance(data, dict):
        return Participant(id=str(data.get("id", "")), nickname=data.get("nickname") or "")
    return Participant(id=str(data) if data is not None else "")


def _price(value: Any) -> Decimal:
    return Decimal(str(value)).quantize(_CENTS)


def offer_from_wire(data: dict[str, Any]) -> Offer:
    """Parse an `offer` sub-object."""
    status = str(data.get("status") or "Pending").capitalize()
    return Offer(id=str(data["id"]), price=_price(data["price"]), status=status)


def review_from_message_wire(data: dict[str, Any], sender: Participant) -> Review:
    """
    Build the review carried by a review-event message.

    Structured `review_data` wins; otherwise details are recovered from the
    "left a review" text. The reviewer falls back to the message sender.
    """
    review_data = data.get("review_data") or {}
    content = data.get("content") or ""

    reviewer = review_data.get("reviewer") or sender.id
    listing = review_data.get("reviewed_product") or data.get("reviewed_product") or ""

    rating = review_data.get("rating")
    if rating is None:
        rating = parse_review_rating(content)

    text = review_data.get("review_text")
    if text is None and not review_data:
        text = parse_review_body(content)

    return Review(
        reviewer_id=str(reviewer),
        reviewed_listing_id=str(listing),
        rating=rating,
        text=text
    )


def message_from_wire(data: dict[str, Any], conversation_id: str | None = None) -> Message:
    """
    Parse one backend message record.

    Args:
        data: Message JSON as returned by the backend
        conversation_id: Used when the record omits its conversation

    Returns:
        TextMessage, OfferEventMessage or ReviewEventMessage
    """
    sender = _participant(data.get("sender", data.get("sender_id")))
    common = {
        "id": str(data["id"]),
        "conversation_id": str(data.get("conversation", conversation_id or "")),
        "sender": sender,
        "content": data.get("content") or "",
        "created_at": data["created_at"],
    }

    offer = data.get("offer")
    if data.get("is_offer"):
        if offer:
            try:
                return OfferEventMessage(offer=offer_from_wire(offer), **common)
            except (KeyError, TypeError, ValueError, InvalidOperation) as e:
                # One unreadable offer must not break the whole snapshot
                logger.warning(f"Offer message {common['id']} has an unreadable offer, showing as text: {e}")
        else:
            # Offer flag without payload renders as plain text
            logger.debug(f"Offer message {common['id']} has no offer payload")

    if data.get("review_data") or is_review_text(data.get("content")):
        return ReviewEventMessage(review=review_from_message_wire(data, sender), **common)

    return TextMessage(**common)


def messages_from_wire(items: list[dict[str, Any]], conversation_id: str | None = None) -> list[Message]:
    return [message_from_wire(item, conversation_id) for item in items]


def _listing(listing_data: dict[str, Any], seller_id: Any) -> ListingRef:
    price = listing_data.get("price")
    return ListingRef(
        product_id=str(listing_data["product_id"]),
        slug=listing_data.get("slug") or "item",
        title=listing_data.get("title") or "",
        price=_price(price) if price is not None else None,
        status=listing_data.get("status") or "available",
        seller_id=str(seller_id),
    )


def conversation_from_wire(data: dict[str, Any]) -> Conversation:
    """Parse a conversation with its listing summary and participants."""
    listing_data = data["listing"]
    listing = _listing(listing_data, listing_data["seller_id"])

    seller = data.get("seller") or {
        "id": listing.seller_id,
        "nickname": listing_data.get("seller_nickname", ""),
    }
    buyer = data.get("buyer") or {
        "id": data.get("buyer_id", ""),
        "nickname": data.get("buyer_nickname", ""),
    }

    return Conversation(
        id=str(data["id"]),
        listing=listing,
        buyer=_participant(buyer),
        seller=_participant(seller),
    )


def conversation_summary_from_wire(data: dict[str, Any], product_id: str | None = None) -> ConversationSummary:
    """
    Parse a conversation list row.

    List rows carry the seller's nickname but not the seller id, and a
    freshly created conversation may only carry the listing's id.

    Args:
        data: Row JSON
        product_id: Listing id to use when the row has no listing object
    """
    conversation_id = str(data["id"])
    listing_data = data.get("listing")
    if not isinstance(listing_data, dict):
        listing_data = {"product_id": listing_data if listing_data is not None else product_id}
    listing = _listing(listing_data, listing_data.get("seller_id") or "")

    other = data.get("other_participant")
    last_message = None
    last = data.get("last_message")
    if last:
        record = {"id": f"{conversation_id}-last", "created_at": data.get("updated_at"), **last}
        try:
            last_message = message_from_wire(record, conversation_id)
        except (KeyError, TypeError, ValueError) as e:
            logger.debug(f"Skipping unreadable last message of conversation {conversation_id}: {e}")

    return ConversationSummary(
        id=conversation_id,
        listing=listing,
        other_participant=_participant(other) if other else None,
        last_message=last_message,
        unread_count=data.get("unread_count") or 0,
    )


def review_from_wire(data: dict[str, Any]) -> Review:
    """Parse a review record from the reviews endpoints."""
    return Review(
        reviewer_id=str(data.get("reviewer", "")),
        reviewed_listing_id=str(data.get("reviewed_product", "")),
        rating=data.get("rating"),
        text=data.get("review_text"),
    )


def message_request(
    conversation_id: str,
    content: str,
    *,
    sender_id: str,
    is_offer: bool = False,
    price: Decimal | None = None
) -> dict[str, Any]:
    """Body for `POST /chat/messages/` (text and offer creation)."""
    payload: dict[str, Any] = {
        "conversation": conversation_id,
        "content": content,
        "message_type": "text",
        "is_offer": is_offer,
        "sender_id": sender_id,
    }
    if is_offer and price is not None:
        payload["price"] = str(price)
    return payload


def review_request(
    reviewed_user_id: str,
    reviewed_product_id: str,
    rating: int,
    text: str | None = None
) -> dict[str, Any]:
    """Body for `POST /reviews/`."""
    return {
        "reviewed_user": reviewed_user_id,
        "reviewed_product": reviewed_product_id,
        "rating": rating,
        "review_text": text or None,
    }
