"""
Unit tests for backend payload mapping.

WHAT: Message kind detection, offer/review parsing, request bodies
WHY: The backend's loose message shape is decoded in one place
HOW: Feed representative JSON dicts through the wire helpers
"""

from datetime import timezone
from decimal import Decimal

import pytest

from marketchat.client.wire import (
    conversation_from_wire,
    conversation_summary_from_wire,
    message_from_wire,
    message_request,
    messages_from_wire,
    review_from_wire,
    review_request,
)
from marketchat.models.chat import OfferEventMessage, ReviewEventMessage, TextMessage


def wire_message(**overrides):
    data = {
        "id": 11,
        "conversation": 3,
        "sender": {"id": 7, "nickname": "Bea"},
        "content": "hello",
        "created_at": "2024-05-01T12:00:00Z",
        "is_offer": False,
    }
    data.update(overrides)
    return data


@pytest.mark.unit
class TestMessageFromWire:

    def test_plain_text(self):
        message = message_from_wire(wire_message())

        assert isinstance(message, TextMessage)
        assert message.id == "11"
        assert message.conversation_id == "3"
        assert message.sender.id == "7"
        assert message.sender.nickname == "Bea"
        assert message.created_at.tzinfo is not None

    def test_offer_event(self):
        message = message_from_wire(wire_message(
            content="Made offer: A$50",
            is_offer=True,
            offer={"id": 5, "price": "50", "status": "pending"},
        ))

        assert isinstance(message, OfferEventMessage)
        assert message.offer.id == "5"
        assert message.offer.price == Decimal("50.00")
        assert message.offer.status == "Pending"

    def test_offer_price_as_float(self):
        message = message_from_wire(wire_message(
            is_offer=True, offer={"id": 5, "price": 49.9, "status": "Accepted"},
        ))

        assert message.offer.price == Decimal("49.90")
        assert message.offer.status == "Accepted"

    def test_offer_flag_without_payload_is_text(self):
        message = message_from_wire(wire_message(is_offer=True, offer=None))

        assert isinstance(message, TextMessage)

    def test_unknown_offer_status_is_text(self):
        message = message_from_wire(wire_message(
            content="Made offer: A$50",
            is_offer=True,
            offer={"id": 5, "price": "50", "status": "countered"},
        ))

        assert isinstance(message, TextMessage)
        assert message.content == "Made offer: A$50"

    def test_unreadable_offer_does_not_break_the_list(self):
        messages = messages_from_wire([
            wire_message(id=1),
            wire_message(id=2, is_offer=True, offer={"id": 5, "price": "fifty"}),
            wire_message(id=3, is_offer=True, offer={"id": 6, "price": "50", "status": "Pending"}),
        ], "3")

        assert [type(m) for m in messages] == [TextMessage, TextMessage, OfferEventMessage]

    def test_structured_review(self):
        message = message_from_wire(wire_message(
            content="Bea left a review: 4 ★",
            review_data={"reviewer": 7, "reviewed_product": 42, "rating": 4, "review_text": "Smooth"},
        ))

        assert isinstance(message, ReviewEventMessage)
        assert message.review.key == ("7", "42")
        assert message.review.rating == 4
        assert message.review.text == "Smooth"

    def test_review_recovered_from_text(self):
        message = message_from_wire(wire_message(
            content="Bea left a review: 5 ★ - Great seller, fast reply",
        ))

        assert isinstance(message, ReviewEventMessage)
        # Reviewer falls back to the sender
        assert message.review.reviewer_id == "7"
        assert message.review.rating == 5
        assert message.review.text == "Great seller, fast reply"

    def test_review_text_without_stars(self):
        message = message_from_wire(wire_message(content="Bea left a review: nice"))

        assert isinstance(message, ReviewEventMessage)
        assert message.review.rating is None

    def test_naive_timestamp_is_utc(self):
        message = message_from_wire(wire_message(created_at="2024-05-01T12:00:00"))

        assert message.created_at.tzinfo == timezone.utc
        assert message.created_at.hour == 12

    def test_conversation_id_fallback(self):
        data = wire_message()
        del data["conversation"]

        assert message_from_wire(data, "c9").conversation_id == "c9"

    def test_sender_id_only(self):
        data = wire_message()
        del data["sender"]
        data["sender_id"] = 8

        message = message_from_wire(data)

        assert message.sender.id == "8"
        assert message.sender.nickname == ""

    def test_missing_id_raises(self):
        data = wire_message()
        del data["id"]

        with pytest.raises(KeyError):
            message_from_wire(data)

    def test_messages_from_wire(self):
        messages = messages_from_wire([wire_message(id=1), wire_message(id=2)], "3")

        assert [m.id for m in messages] == ["1", "2"]


@pytest.mark.unit
class TestConversationFromWire:

    def test_full_payload(self):
        conversation = conversation_from_wire({
            "id": 3,
            "listing": {
                "product_id": 42,
                "slug": "road-bike",
                "title": "Road bike",
                "price": "60",
                "status": "sold",
                "seller_id": 9,
            },
            "buyer": {"id": 7, "nickname": "Bea"},
            "seller": {"id": 9, "nickname": "Sam"},
        })

        assert conversation.id == "3"
        assert conversation.listing.price == Decimal("60.00")
        assert conversation.listing.is_sold
        assert conversation.role_of("9") == "seller"
        assert conversation.role_of("7") == "buyer"

    def test_participants_derived_from_flat_fields(self):
        conversation = conversation_from_wire({
            "id": 3,
            "listing": {"product_id": 42, "seller_id": 9, "seller_nickname": "Sam"},
            "buyer_id": 7,
            "buyer_nickname": "Bea",
        })

        assert conversation.seller.id == "9"
        assert conversation.seller.nickname == "Sam"
        assert conversation.buyer.id == "7"
        assert conversation.listing.slug == "item"
        assert conversation.listing.price is None


@pytest.mark.unit
class TestConversationSummaryFromWire:

    def test_recent_conversation_row(self):
        summary = conversation_summary_from_wire({
            "id": 3,
            "listing": {"product_id": 42, "title": "Road bike", "price": "60", "seller_nickname": "Sam"},
            "other_participant": {"nickname": "Sam", "avatar": None},
            "last_message": {
                "content": "Made offer: A$50",
                "created_at": "2024-05-01T12:00:00Z",
                "is_offer": True,
                "offer": {"id": 5, "price": "50", "status": "pending"},
            },
            "unread_count": 2,
        })

        assert summary.id == "3"
        assert summary.listing.product_id == "42"
        assert summary.listing.seller_id == ""
        assert summary.other_participant.nickname == "Sam"
        assert isinstance(summary.last_message, OfferEventMessage)
        assert summary.last_message.conversation_id == "3"
        assert summary.unread_count == 2

    def test_row_without_last_message(self):
        summary = conversation_summary_from_wire({"id": 3, "listing": {"product_id": 42}})

        assert summary.last_message is None
        assert summary.other_participant is None
        assert summary.unread_count == 0

    def test_unreadable_last_message_is_skipped(self):
        summary = conversation_summary_from_wire({
            "id": 3,
            "listing": {"product_id": 42},
            "last_message": {"content": "hi"},
        })

        assert summary.last_message is None

    def test_created_conversation_with_listing_id_only(self):
        summary = conversation_summary_from_wire({"id": 8, "listing": 42})

        assert summary.id == "8"
        assert summary.listing.product_id == "42"

    def test_listing_id_fallback(self):
        summary = conversation_summary_from_wire({"id": 8}, product_id="42")

        assert summary.listing.product_id == "42"


@pytest.mark.unit
class TestRequests:

    def test_text_message_request(self):
        body = message_request("3", "hi", sender_id="7")

        assert body == {
            "conversation": "3",
            "content": "hi",
            "message_type": "text",
            "is_offer": False,
            "sender_id": "7",
        }

    def test_offer_request_carries_price_as_string(self):
        body = message_request("3", "Made offer: A$50", sender_id="7", is_offer=True, price=Decimal("50"))

        assert body["is_offer"] is True
        assert body["price"] == "50"

    def test_review_request(self):
        assert review_request("9", "42", 5, "") == {
            "reviewed_user": "9",
            "reviewed_product": "42",
            "rating": 5,
            "review_text": None,
        }

    def test_review_from_wire(self):
        review = review_from_wire({"reviewer": 7, "reviewed_product": 42, "rating": 3})

        assert review.key == ("7", "42")
        assert review.text is None
