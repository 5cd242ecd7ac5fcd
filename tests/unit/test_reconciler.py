"""
Unit tests for message reconciliation.

WHAT: Offer/review dedupe, ordering, optimistic merge, idempotence
WHY: The timeline the user sees is entirely derived from reconcile()
HOW: Hand-built message lists with explicit timestamps
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from marketchat.models.chat import (
    Offer,
    OfferEventMessage,
    Participant,
    Review,
    ReviewEventMessage,
    TextMessage,
)
from marketchat.services.reconciler import (
    current_offers,
    has_accepted_offer,
    latest_pending_offer,
    reconcile,
)

BUYER = Participant(id="b", nickname="Bea")
SELLER = Participant(id="s", nickname="Sam")
T0 = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def at(minutes: float) -> datetime:
    return T0 + timedelta(minutes=minutes)


def text(msg_id, minutes, sender=BUYER, content="hi", optimistic=False):
    return TextMessage(
        id=msg_id, conversation_id="c1", sender=sender, content=content,
        created_at=at(minutes), is_optimistic=optimistic,
    )


def offer_event(msg_id, minutes, offer_id, status="Pending", price="50", optimistic=False):
    return OfferEventMessage(
        id=msg_id, conversation_id="c1", sender=BUYER, content=f"offer {status}",
        created_at=at(minutes), is_optimistic=optimistic,
        offer=Offer(id=offer_id, price=Decimal(price), status=status),
    )


def review_event(msg_id, minutes, reviewer="b", listing="p1", rating=5, optimistic=False):
    return ReviewEventMessage(
        id=msg_id, conversation_id="c1", sender=BUYER,
        content=f"Bea left a review: {rating} ★", created_at=at(minutes),
        is_optimistic=optimistic,
        review=Review(reviewer_id=reviewer, reviewed_listing_id=listing, rating=rating),
    )


@pytest.mark.unit
class TestOfferDedupe:

    def test_latest_event_per_offer_wins(self):
        messages = [
            offer_event("m1", 1, "o1", "Pending"),
            offer_event("m2", 2, "o1", "Pending"),
            offer_event("m3", 3, "o1", "Accepted"),
        ]

        timeline = reconcile(messages)

        assert len(timeline) == 1
        assert timeline[0].id == "m3"
        assert timeline[0].offer.status == "Accepted"

    def test_latest_wins_regardless_of_input_order(self):
        messages = [
            offer_event("m3", 3, "o1", "Rejected"),
            offer_event("m1", 1, "o1", "Pending"),
        ]

        timeline = reconcile(messages)

        assert [m.id for m in timeline] == ["m3"]

    def test_timestamp_tie_goes_to_later_position(self):
        messages = [
            offer_event("m1", 1, "o1", "Pending"),
            offer_event("m2", 1, "o1", "Cancelled"),
        ]

        assert reconcile(messages)[0].id == "m2"

    def test_distinct_offers_are_kept(self):
        messages = [
            offer_event("m1", 1, "o1", "Pending"),
            offer_event("m2", 2, "o1", "Cancelled"),
            offer_event("m3", 3, "o2", "Pending", price="55"),
        ]

        timeline = reconcile(messages)

        assert [(m.offer.id, m.offer.status) for m in timeline] == [
            ("o1", "Cancelled"), ("o2", "Pending"),
        ]

    def test_at_most_one_message_per_offer_id(self):
        messages = [offer_event(f"m{i}", i, f"o{i % 3}") for i in range(12)]

        timeline = reconcile(messages)

        offer_ids = [m.offer.id for m in timeline]
        assert sorted(offer_ids) == ["o0", "o1", "o2"]


@pytest.mark.unit
class TestReviewDedupe:

    def test_one_review_per_reviewer_and_listing(self):
        messages = [
            review_event("r1", 1, rating=3),
            review_event("r2", 2, rating=5),
        ]

        timeline = reconcile(messages)

        assert [m.id for m in timeline] == ["r2"]

    def test_different_listings_are_separate_reviews(self):
        messages = [
            review_event("r1", 1, listing="p1"),
            review_event("r2", 2, listing="p2"),
            review_event("r3", 3, reviewer="x", listing="p1"),
        ]

        assert len(reconcile(messages)) == 3

    def test_text_recovered_review_without_rating(self):
        unparsed = ReviewEventMessage(
            id="r1", conversation_id="c1", sender=BUYER,
            content="Bea left a review: great seller", created_at=at(1),
            review=Review(reviewer_id="b", reviewed_listing_id="p1"),
        )

        timeline = reconcile([unparsed, review_event("r2", 2)])

        assert [m.id for m in timeline] == ["r2"]


@pytest.mark.unit
class TestOrdering:

    def test_sorted_by_created_at(self):
        messages = [
            text("t3", 3),
            offer_event("m1", 1, "o1"),
            text("t2", 2),
            review_event("r1", 4),
            text("t0", 0),
        ]

        timeline = reconcile(messages)

        assert [m.id for m in timeline] == ["t0", "m1", "t2", "t3", "r1"]
        stamps = [m.created_at for m in timeline]
        assert stamps == sorted(stamps)

    def test_plain_messages_are_never_deduplicated(self):
        messages = [text("t1", 1, content="same"), text("t2", 1, content="same")]

        assert [m.id for m in reconcile(messages)] == ["t1", "t2"]

    def test_offer_moves_to_its_latest_event_time(self):
        messages = [
            offer_event("m1", 1, "o1", "Pending"),
            text("t1", 2),
            offer_event("m2", 3, "o1", "Accepted"),
        ]

        assert [m.id for m in reconcile(messages)] == ["t1", "m2"]

    def test_naive_timestamps_compare_as_utc(self):
        naive = TextMessage(
            id="t-naive", conversation_id="c1", sender=SELLER,
            created_at=datetime(2024, 5, 1, 12, 30),
        )

        timeline = reconcile([text("t1", 45), naive, text("t0", 0)])

        assert [m.id for m in timeline] == ["t0", "t-naive", "t1"]


@pytest.mark.unit
class TestOptimisticMerge:

    def test_unconfirmed_optimistic_entries_are_appended(self):
        server = [text("t1", 1)]
        local = [text("temp-1", 2, optimistic=True)]

        timeline = reconcile(server, local)

        assert [m.id for m in timeline] == ["t1", "temp-1"]
        assert timeline[-1].is_optimistic

    def test_optimistic_entry_already_on_server_is_dropped(self):
        server = [text("t1", 1), text("t2", 2)]
        local = [text("t2", 5, content="stale local copy", optimistic=True)]

        timeline = reconcile(server, local)

        assert [m.id for m in timeline] == ["t1", "t2"]
        assert not timeline[-1].is_optimistic

    def test_optimistic_status_event_supersedes_server_event(self):
        server = [offer_event("m1", 1, "o1", "Pending")]
        local = [offer_event("temp-1", 2, "o1", "Accepted", optimistic=True)]

        timeline = reconcile(server, local)

        assert len(timeline) == 1
        assert timeline[0].offer.status == "Accepted"
        assert timeline[0].is_optimistic

    def test_inputs_are_not_mutated(self):
        server = [offer_event("m2", 2, "o1", "Accepted"), text("t1", 1)]
        local = [text("temp-1", 3, optimistic=True)]
        server_before = list(server)
        local_before = list(local)

        result = reconcile(server, local)

        assert server == server_before
        assert local == local_before
        assert result is not server


@pytest.mark.unit
class TestIdempotence:

    def test_reconcile_of_reconciled_is_equal(self):
        messages = [
            text("t1", 1),
            offer_event("m1", 2, "o1", "Pending"),
            offer_event("m2", 3, "o1", "Rejected"),
            offer_event("m3", 4, "o2", "Pending", price="45"),
            review_event("r1", 5, rating=2),
            review_event("r2", 6, rating=4),
            text("t2", 6),
        ]

        once = reconcile(messages)
        twice = reconcile(once)

        assert twice == once

    def test_empty_input(self):
        assert reconcile([]) == []


@pytest.mark.unit
class TestDerivedState:

    def test_latest_pending_offer(self):
        timeline = reconcile([
            offer_event("m1", 1, "o1", "Pending"),
            offer_event("m2", 2, "o1", "Cancelled"),
            offer_event("m3", 3, "o2", "Pending", price="55"),
        ])

        pending = latest_pending_offer(timeline)

        assert pending.id == "o2"
        assert pending.price == Decimal("55")

    def test_no_pending_offer_when_all_terminal(self):
        timeline = reconcile([
            offer_event("m1", 1, "o1", "Pending"),
            offer_event("m2", 2, "o1", "Accepted"),
        ])

        assert latest_pending_offer(timeline) is None
        assert has_accepted_offer(timeline)

    def test_current_offers(self):
        timeline = [offer_event("m1", 1, "o1"), offer_event("m2", 2, "o2", "Rejected")]

        offers = current_offers(timeline)

        assert offers["o1"].status == "Pending"
        assert offers["o2"].status == "Rejected"
        assert not has_accepted_offer(timeline)
