"""
Offer state machine and review eligibility.

WHAT: Valid offer transitions, who may trigger them, and when a review is allowed
WHY: Wrong-role or invalid actions must be rejected before any request is sent
HOW: Transition table keyed by (current status, action), checked role-first

States: Pending -> Accepted | Rejected | Cancelled. The three outcomes are
terminal. Amend is modelled as Cancel of the old offer plus Create of a new one.
"""

from dataclasses import dataclass
from decimal import Decimal

from ..models.chat import Offer, OfferAction, OfferStatus, Role
from ..utils.exceptions import (
    InvalidTransitionError,
    PermissionDeniedError,
    ReviewNotAllowedError,
    ValidationError,
)
from ..utils.offers import parse_price
from ..utils.logger import get_logger

logger = get_logger(__name__)


ACTION_ROLES: dict[str, Role] = {
    "Create": "buyer",
    "Cancel": "buyer",
    "Amend": "buyer",
    "Accept": "seller",
    "Reject": "seller",
}

# (from status, action) -> resulting status of the offer acted upon.
# For Amend this is the old offer; the replacement starts Pending.
TRANSITIONS: dict[tuple[OfferStatus | None, str], OfferStatus] = {
    (None, "Create"): "Pending",
    ("Pending", "Accept"): "Accepted",
    ("Pending", "Reject"): "Rejected",
    ("Pending", "Cancel"): "Cancelled",
    ("Pending", "Amend"): "Cancelled",
}


@dataclass
class OfferTransition:
    """An authorized offer action, ready to be sent."""
    action: OfferAction
    offer_id: str | None
    from_status: OfferStatus | None
    to_status: OfferStatus
    price: Decimal | None = None


def check_permission(action: OfferAction, role: Role) -> None:
    """
    Ensure `role` may perform `action`.

    Raises:
        PermissionDeniedError: Seller creating/cancelling/amending, or
            buyer accepting/rejecting
    """
    required = ACTION_ROLES.get(action)
    if required is None:
        raise ValidationError(f"Unknown offer action: {action}", field="action")
    if role != required:
        logger.info(f"Rejected {action} by {role}: only the {required} may do this")
        raise PermissionDeniedError(action, role)


def next_status(current: OfferStatus | None, action: OfferAction) -> OfferStatus:
    """
    Look up the status an offer moves to.

    Args:
        current: Status of the offer acted upon (None when creating)
        action: Offer action

    Raises:
        InvalidTransitionError: No such transition from `current`
    """
    try:
        return TRANSITIONS[(current, action)]
    except KeyError:
        raise InvalidTransitionError(action, current) from None


def authorize_offer_action(
    action: OfferAction,
    role: Role,
    pending_offer: Offer | None,
    price: str | Decimal | float | int | None = None
) -> OfferTransition:
    """
    Validate an offer action locally.

    Checks run in order: role, state, price. Nothing here touches the network.

    Args:
        action: Create, Accept, Reject, Cancel or Amend
        role: Role of the requester in this conversation
        pending_offer: The conversation's current pending offer, if any
        price: Amount for Create/Amend

    Returns:
        OfferTransition describing the authorized change

    Raises:
        PermissionDeniedError: Wrong role
        InvalidTransitionError: Create while an offer is pending, or an
            action on a missing/terminal offer
        ValidationError: Invalid price
    """
    check_permission(action, role)

    if action == "Create":
        if pending_offer is not None and not pending_offer.is_terminal:
            # One pending offer per conversation; changing it is an amend
            raise InvalidTransitionError(action, pending_offer.status)
        return OfferTransition(
            action=action,
            offer_id=None,
            from_status=None,
            to_status=next_status(None, action),
            price=parse_price(price)
        )

    if pending_offer is None:
        raise InvalidTransitionError(action, None)

    to_status = next_status(pending_offer.status, action)
    parsed_price = parse_price(price) if action == "Amend" else None

    return OfferTransition(
        action=action,
        offer_id=pending_offer.id,
        from_status=pending_offer.status,
        to_status=to_status,
        price=parsed_price
    )


def apply_transition(offer: Offer, transition: OfferTransition) -> Offer:
    """Return a copy of `offer` in the transition's resulting status."""
    if offer.id != transition.offer_id:
        raise ValueError(f"Transition targets offer {transition.offer_id}, not {offer.id}")
    return offer.model_copy(update={"status": transition.to_status})


def validate_rating(rating: int) -> int:
    """Ratings are whole stars from 1 to 5."""
    if isinstance(rating, bool) or not isinstance(rating, int) or not 1 <= rating <= 5:
        raise ValidationError("Rating must be between 1 and 5 stars", field="rating")
    return rating


def check_review_eligibility(
    role: Role,
    has_reviewed: bool,
    offer_accepted: bool,
    listing_sold: bool
) -> None:
    """
    Ensure a review may be submitted.

    Allowed only for the buyer, once per (reviewer, listing), after an
    accepted offer on a listing whose status is sold.

    Raises:
        PermissionDeniedError: Requester is the seller
        ReviewNotAllowedError: Any other eligibility rule fails
    """
    if role != "buyer":
        raise PermissionDeniedError("Review", role, message="Only the buyer can review the seller")
    if has_reviewed:
        raise ReviewNotAllowedError("You have already reviewed this seller for this product.")
    if not offer_accepted:
        raise ReviewNotAllowedError("You can only review after your offer has been accepted.")
    if not listing_sold:
        raise ReviewNotAllowedError("You can only review once the listing is sold.")
