"""
Message reconciliation.

WHAT: Merge server messages and optimistic local messages into one timeline
WHY: The backend appends a new message on every offer/review change, but the
     chat shows one bubble per offer and per review, in time order
HOW: Bucket by kind, keep the latest event per offer id and per review key,
     add unconfirmed optimistic entries, stable-sort by created_at

Pure: inputs are never mutated and no state is kept between calls.
"""

from typing import Iterable, Sequence

from ..models.chat import (
    Message,
    Offer,
    OfferEventMessage,
    ReviewEventMessage,
    TextMessage,
)
from ..utils.logger import get_logger

logger = get_logger(__name__)


def _keep_latest(existing: Message | None, candidate: Message) -> Message:
    # Ties go to the later position in the input
    if existing is None or candidate.created_at >= existing.created_at:
        return candidate
    return existing


def reconcile(
    server_messages: Sequence[Message],
    local_optimistic: Iterable[Message] = ()
) -> list[Message]:
    """
    Build the display timeline.

    Args:
        server_messages: Confirmed messages from the backend
        local_optimistic: Locally created, not-yet-confirmed messages

    Returns:
        New list: plain messages, the latest event per offer id, the latest
        review per (reviewer, listing), sorted by created_at ascending.
        Optimistic entries whose id already exists on the server are dropped.

    Reconciling an already reconciled list with no optimistic input returns
    an equal list.
    """
    server_ids = {message.id for message in server_messages}
    pending = [message for message in local_optimistic if message.id not in server_ids]

    plain: list[Message] = []
    offers: dict[str, Message] = {}
    reviews: dict[tuple[str, str], Message] = {}

    for message in [*server_messages, *pending]:
        if isinstance(message, OfferEventMessage):
            offers[message.offer.id] = _keep_latest(offers.get(message.offer.id), message)
        elif isinstance(message, ReviewEventMessage):
            key = message.review.key
            reviews[key] = _keep_latest(reviews.get(key), message)
        elif isinstance(message, TextMessage):
            plain.append(message)
        else:
            raise TypeError(f"Unknown message kind: {type(message).__name__}")

    timeline = [*plain, *offers.values(), *reviews.values()]
    timeline.sort(key=lambda message: message.created_at)

    logger.debug(
        f"Reconciled {len(server_messages)} server + {len(pending)} optimistic messages "
        f"-> {len(plain)} plain, {len(offers)} offers, {len(reviews)} reviews"
    )
    return timeline


def current_offers(timeline: Iterable[Message]) -> dict[str, Offer]:
    """Current state of every offer, keyed by offer id (last event wins)."""
    result: dict[str, Offer] = {}
    for message in timeline:
        if isinstance(message, OfferEventMessage):
            result[message.offer.id] = message.offer
    return result


def latest_pending_offer(timeline: Iterable[Message]) -> Offer | None:
    """
    The conversation's pending offer, if any.

    Takes the last Pending offer in timeline order, so it expects a
    reconciled timeline where each offer appears once.
    """
    pending = None
    for message in timeline:
        if isinstance(message, OfferEventMessage) and message.offer.status == "Pending":
            pending = message.offer
    return pending


def has_accepted_offer(timeline: Iterable[Message]) -> bool:
    return any(offer.status == "Accepted" for offer in current_offers(timeline).values())
