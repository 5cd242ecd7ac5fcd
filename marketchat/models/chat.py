"""
Conversation domain models.

WHAT: Messages, offers, reviews, conversations and the caller's auth context
WHY: One typed vocabulary shared by the reconciler, state machine and session
HOW: Pydantic v2 models; messages are a tagged union discriminated on `kind`
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Annotated, Any, Callable, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


OfferStatus = Literal["Pending", "Accepted", "Rejected", "Cancelled"]
OfferAction = Literal["Create", "Accept", "Reject", "Cancel", "Amend"]
Decision = Literal["Accept", "Reject"]
Role = Literal["buyer", "seller"]

TERMINAL_STATUSES: frozenset[str] = frozenset({"Accepted", "Rejected", "Cancelled"})


def utc_now() -> datetime:
    """Timezone-aware current time, used for optimistic timestamps."""
    return datetime.now(timezone.utc)


class Participant(BaseModel):
    """A user taking part in a conversation."""

    model_config = ConfigDict(frozen=True)

    id: str
    nickname: str = ""


class ListingRef(BaseModel):
    """Summary of the listing a conversation is about."""

    product_id: str
    slug: str = "item"
    title: str = ""
    price: Decimal | None = None
    status: str = "available"
    seller_id: str

    @property
    def is_sold(self) -> bool:
        return self.status.lower() == "sold"


class Offer(BaseModel):
    """A buyer-proposed price and its current approval status."""

    model_config = ConfigDict(frozen=True)

    id: str
    price: Decimal = Field(gt=0, decimal_places=2)
    status: OfferStatus = "Pending"

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


class Review(BaseModel):
    """
    A post-sale review.

    `rating` is optional only for reviews recovered from free-text content
    where the stars could not be parsed.
    """

    model_config = ConfigDict(frozen=True)

    reviewer_id: str
    reviewed_listing_id: str = ""
    rating: int | None = Field(default=None, ge=1, le=5)
    text: str | None = None

    @property
    def key(self) -> tuple[str, str]:
        """Composite dedupe key: one displayed review per (reviewer, listing)."""
        return (self.reviewer_id, self.reviewed_listing_id)


class _MessageBase(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    conversation_id: str
    sender: Participant
    content: str = ""
    created_at: datetime = Field(default_factory=utc_now)
    is_optimistic: bool = False

    @field_validator("created_at")
    @classmethod
    def assume_utc(cls, v: datetime) -> datetime:
        """Naive server timestamps are UTC; keep every timestamp comparable."""
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v


class TextMessage(_MessageBase):
    """Plain chat text."""

    kind: Literal["text"] = "text"


class OfferEventMessage(_MessageBase):
    """A message announcing an offer's creation or status change."""

    kind: Literal["offer_event"] = "offer_event"
    offer: Offer


class ReviewEventMessage(_MessageBase):
    """A message announcing a review."""

    kind: Literal["review_event"] = "review_event"
    review: Review


Message = Annotated[
    Union[TextMessage, OfferEventMessage, ReviewEventMessage],
    Field(discriminator="kind"),
]


class Conversation(BaseModel):
    """A buyer/seller thread about one listing."""

    id: str
    listing: ListingRef
    buyer: Participant
    seller: Participant

    def role_of(self, user_id: str) -> Role:
        """The listing's seller is the seller; anyone else is the buyer."""
        if str(user_id) == str(self.listing.seller_id):
            return "seller"
        return "buyer"


class ConversationSummary(BaseModel):
    """
    One row of a conversation list (recent chats, chats about a listing).

    The listing's `seller_id` may be blank: list endpoints only carry the
    seller's nickname.
    """

    id: str
    listing: ListingRef
    other_participant: Participant | None = None
    last_message: Message | None = None
    unread_count: int = Field(default=0, ge=0)


class AuthContext(BaseModel):
    """
    Credentials of the signed-in user, passed explicitly into a session.

    `on_auth_required` is the sign-in redirect hook fired when the backend
    rejects the token after retries are exhausted.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    user_id: str
    access_token: str
    nickname: str = ""
    on_auth_required: Callable[[], Any] | None = Field(default=None, exclude=True)

    @property
    def participant(self) -> Participant:
        return Participant(id=self.user_id, nickname=self.nickname or "You")

    def auth_required(self) -> None:
        if self.on_auth_required is not None:
            self.on_auth_required()
