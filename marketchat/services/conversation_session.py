"""
Conversation session orchestration.

WHAT: Owns one open conversation: its confirmed messages, optimistic
      messages, display timeline, pending-offer pointer and refresh timer
WHY: Single place where user actions, polling and reconciliation meet
HOW: Every mutation runs validate -> optimistic append -> retried network
     call -> confirm or revert; a cancellable task refreshes on an interval
"""

import asyncio
from datetime import timedelta
from decimal import Decimal
from typing import Awaitable, Callable, TypeVar
from uuid import uuid4

from ..client.backend import MarketplaceBackend
from ..core.config import settings
from ..models.chat import (
    AuthContext,
    Conversation,
    Decision,
    Message,
    Offer,
    OfferEventMessage,
    Review,
    ReviewEventMessage,
    Role,
    TextMessage,
    utc_now,
)
from ..utils.exceptions import (
    AuthError,
    ChatException,
    FatalError,
    SessionClosedError,
    ValidationError,
)
from ..utils.logger import get_logger
from ..utils.offers import offer_content
from .offer_state import (
    OfferTransition,
    apply_transition,
    authorize_offer_action,
    check_review_eligibility,
    validate_rating,
)
from .reconciler import has_accepted_offer, latest_pending_offer, reconcile
from .retry import with_retry

logger = get_logger(__name__)

T = TypeVar("T")


class ConversationSession:
    """
    Client-side state for one buyer/seller conversation.

    Lifecycle: `await open()` loads the conversation and starts polling,
    `await close()` stops polling. Responses that arrive after close are
    discarded. Public operations raise only ChatException subclasses.
    """

    def __init__(
        self,
        conversation_id: str,
        auth: AuthContext,
        backend: MarketplaceBackend,
        *,
        refresh_interval: float | None = None,
        max_retries: int | None = None,
        retry_delay: float | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    ):
        """
        Initialize a session (no network activity until `open`).

        Args:
            conversation_id: Conversation to load
            auth: Signed-in user's context, shared by reference
            backend: Marketplace collaborator
            refresh_interval: Polling period in seconds (default settings.REFRESH_INTERVAL);
                0 disables the background timer
            max_retries: Retry budget per network call (default settings.RETRY_MAX_RETRIES)
            retry_delay: Seconds between attempts (default settings.RETRY_DELAY)
            sleep: Awaitable sleep used for retry delays
        """
        self.conversation_id = str(conversation_id)
        self.auth = auth
        self.backend = backend
        self.refresh_interval = settings.REFRESH_INTERVAL if refresh_interval is None else refresh_interval
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self._sleep = sleep

        self.conversation: Conversation | None = None
        self.has_reviewed = False
        self.is_active = False

        self._server_messages: list[Message] = []
        self._optimistic: list[Message] = []
        # Optimistic ids whose action the server confirmed but no snapshot has shown yet
        self._settled: set[str] = set()
        self._timeline: list[Message] = []
        self._pending_offer: Offer | None = None
        self._refresh_task: asyncio.Task | None = None
        # Serializes create/amend/cancel/respond so each authorizes against settled state
        self._offer_lock = asyncio.Lock()

    # ========== Read side ==========

    @property
    def timeline(self) -> list[Message]:
        """Reconciled messages to render, oldest first."""
        return list(self._timeline)

    @property
    def pending_offer(self) -> Offer | None:
        """The single confirmed Pending offer of this conversation, if any."""
        return self._pending_offer

    @property
    def role(self) -> Role:
        if self.conversation is None:
            raise SessionClosedError(self.conversation_id)
        return self.conversation.role_of(self.auth.user_id)

    def is_mine(self, message: Message) -> bool:
        return message.sender.id == self.auth.user_id

    # ========== Lifecycle ==========

    async def open(self) -> list[Message]:
        """
        Load conversation, messages and review state, then start polling.

        Raises:
            ChatException: Conversation or messages could not be loaded
        """
        if self.is_active:
            logger.debug(f"Conversation {self.conversation_id} is already open")
            return self.timeline

        logger.info(f"Opening conversation {self.conversation_id}")
        conversation, messages = await asyncio.gather(
            self._call("load conversation", lambda: self.backend.get_conversation(self.conversation_id)),
            self._call("load messages", lambda: self.backend.get_messages(self.conversation_id)),
        )
        self.conversation = conversation
        self.is_active = True
        self._apply_snapshot(messages)
        await self._load_review_state()

        if self.refresh_interval > 0:
            self._refresh_task = asyncio.create_task(self._refresh_loop())
            logger.info(f"Started refresh timer for {self.conversation_id} (interval: {self.refresh_interval}s)")

        return self.timeline

    async def close(self) -> None:
        """Stop polling and mark the session dead. In-flight calls are not cancelled."""
        if not self.is_active and self._refresh_task is None:
            return
        self.is_active = False
        task, self._refresh_task = self._refresh_task, None
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        logger.info(f"Closed conversation {self.conversation_id}")

    async def __aenter__(self) -> "ConversationSession":
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def reload_conversation(self) -> Conversation:
        """Re-fetch participants and listing (e.g. to observe the listing becoming sold)."""
        self._ensure_active()
        conversation = await self._call(
            "load conversation", lambda: self.backend.get_conversation(self.conversation_id)
        )
        if self.is_active:
            self.conversation = conversation
        return conversation

    async def refresh(self) -> list[Message]:
        """
        Replace confirmed state with the latest server snapshot.

        This is the only way changes made by the other participant are seen.
        """
        self._ensure_active()
        messages = await self._call("refresh messages", lambda: self.backend.get_messages(self.conversation_id))
        if not self.is_active:
            logger.debug(f"Discarding refresh for closed conversation {self.conversation_id}")
            return self.timeline
        self._apply_snapshot(messages)
        return self.timeline

    async def _refresh_loop(self) -> None:
        while self.is_active:
            await asyncio.sleep(self.refresh_interval)
            if not self.is_active:
                break
            try:
                await self.refresh()
            except SessionClosedError:
                break
            except ChatException as e:
                logger.warning(f"Periodic refresh failed for {self.conversation_id}: {e.code} - {e.message}")

    async def _load_review_state(self) -> None:
        """Seed `has_reviewed` from the listing's reviews; failures are ignored."""
        listing_id = self.conversation.listing.product_id
        try:
            reviews = await self.backend.list_reviews(listing_id)
        except Exception as e:
            logger.warning(f"Error fetching reviews for listing {listing_id}: {e}")
            return
        self.has_reviewed = any(review.reviewer_id == str(self.auth.user_id) for review in reviews)

    # ========== Mutations ==========

    async def send_text(self, content: str) -> Message:
        """
        Send a plain text message.

        Raises:
            ValidationError: Empty message
            ChatException: Send failed after retries (optimistic message removed)
        """
        self._ensure_active()
        text = (content or "").strip()
        if not text:
            raise ValidationError("Message cannot be empty", field="content")

        temp = TextMessage(
            id=self._temp_id(),
            conversation_id=self.conversation_id,
            sender=self.auth.participant,
            content=text,
            is_optimistic=True,
        )
        return await self._post_with_optimistic(
            "send message",
            temp,
            lambda: self.backend.post_message(self.conversation_id, text),
        )

    async def create_offer(self, price: str | Decimal | float | int) -> Message:
        """
        Make a new offer as the buyer.

        Raises:
            PermissionDeniedError: Requester is the seller
            InvalidTransitionError: An offer is already pending (amend instead)
            ValidationError: Invalid price
            ChatException: Request failed after retries
        """
        async with self._offer_lock:
            self._ensure_active()
            transition = authorize_offer_action("Create", self.role, self._pending_offer, price)
            content = offer_content(transition.price)

            temp = self._optimistic_offer(transition.price, content)
            confirmed = await self._post_with_optimistic(
                "create offer",
                temp,
                lambda: self.backend.post_message(
                    self.conversation_id, content, is_offer=True, price=transition.price
                ),
            )
            if isinstance(confirmed, OfferEventMessage):
                logger.info(f"Offer {confirmed.offer.id} created at {confirmed.offer.price}")
            return confirmed

    async def amend_offer(self, price: str | Decimal | float | int) -> Message:
        """
        Replace the pending offer with a new price.

        The old offer is cancelled first; the new offer is only created once
        the server confirms the cancel. If the cancel fails the old offer
        stays Pending. If the create fails after a confirmed cancel, the
        conversation is left without a pending offer.
        """
        async with self._offer_lock:
            self._ensure_active()
            return await self._amend_locked(price)

    async def _amend_locked(self, price: str | Decimal | float | int) -> Message:
        transition = authorize_offer_action("Amend", self.role, self._pending_offer, price)
        old_offer = self._pending_offer
        content = offer_content(transition.price, amended=True)

        cancel_event = self._optimistic_status_event(old_offer, transition)
        new_offer = self._optimistic_offer(transition.price, content)
        self._add_optimistic(cancel_event, new_offer)

        try:
            await self._call("cancel offer", lambda: self.backend.offer_action(old_offer.id, "cancel"))
        except ChatException:
            logger.warning(f"Amend of offer {old_offer.id} aborted: cancel failed")
            self._drop_optimistic(cancel_event.id, new_offer.id)
            raise

        self._settle(cancel_event.id)
        try:
            confirmed = await self._call(
                "create offer",
                lambda: self.backend.post_message(
                    self.conversation_id, content, is_offer=True, price=transition.price
                ),
            )
        except ChatException:
            logger.error(f"Offer {old_offer.id} cancelled but replacement could not be created")
            self._drop_optimistic(new_offer.id)
            await self._refresh_quietly()
            raise

        self._confirm(new_offer.id, confirmed)
        await self._refresh_quietly()
        return confirmed

    async def cancel_offer(self) -> Offer:
        """Withdraw the pending offer as the buyer."""
        async with self._offer_lock:
            self._ensure_active()
            transition = authorize_offer_action("Cancel", self.role, self._pending_offer)
            return await self._change_offer_status(transition, "cancel")

    async def respond_to_offer(self, decision: Decision) -> Offer:
        """
        Accept or reject the pending offer as the seller.

        Args:
            decision: "Accept" or "Reject"
        """
        if decision not in ("Accept", "Reject"):
            raise ValidationError(f"Unknown decision: {decision}", field="decision")
        async with self._offer_lock:
            self._ensure_active()
            transition = authorize_offer_action(decision, self.role, self._pending_offer)
            return await self._change_offer_status(transition, decision.lower())

    async def submit_review(self, rating: int, text: str | None = None) -> Review:
        """
        Review the seller after a completed sale.

        Raises:
            ValidationError: Rating outside 1..5
            PermissionDeniedError: Requester is the seller
            ReviewNotAllowedError: Already reviewed, no accepted offer, or listing not sold
            ChatException: Request failed after retries
        """
        self._ensure_active()
        rating = validate_rating(rating)
        confirmed_timeline = [message for message in self._timeline if not message.is_optimistic]
        check_review_eligibility(
            self.role,
            self.has_reviewed,
            has_accepted_offer(confirmed_timeline),
            self.conversation.listing.is_sold,
        )

        body = (text or "").strip() or None
        listing = self.conversation.listing
        review = Review(
            reviewer_id=str(self.auth.user_id),
            reviewed_listing_id=listing.product_id,
            rating=rating,
            text=body,
        )
        participant = self.auth.participant
        content = f"{participant.nickname} {settings.REVIEW_MARKER} {rating} ★"
        if body:
            content = f"{content} - {body}"
        temp = ReviewEventMessage(
            id=self._temp_id(),
            conversation_id=self.conversation_id,
            sender=participant,
            content=content,
            review=review,
            is_optimistic=True,
        )
        self._add_optimistic(temp)

        try:
            created = await self._call(
                "submit review",
                lambda: self.backend.post_review(listing.seller_id, listing.product_id, rating, body),
            )
        except ChatException:
            self._drop_optimistic(temp.id)
            raise

        self.has_reviewed = True
        self._settle(temp.id)
        await self._refresh_quietly()
        logger.info(f"Review submitted for listing {listing.product_id}")
        return created

    # ========== Internals ==========

    async def _call(self, label: str, operation: Callable[[], Awaitable[T]]) -> T:
        """Run a backend call through the retry controller and normalize errors."""
        try:
            return await with_retry(
                operation,
                self.max_retries,
                self.retry_delay,
                sleep=self._sleep,
                label=label,
            )
        except AuthError:
            logger.warning(f"Authentication required during {label}")
            self.auth.auth_required()
            raise
        except ChatException:
            raise
        except Exception as e:
            logger.error(f"Unexpected error during {label}: {e}", exc_info=True)
            raise FatalError(f"Failed to {label}. Please try again.") from e

    async def _post_with_optimistic(
        self,
        label: str,
        temp: Message,
        operation: Callable[[], Awaitable[Message]]
    ) -> Message:
        self._add_optimistic(temp)
        try:
            confirmed = await self._call(label, operation)
        except ChatException:
            self._drop_optimistic(temp.id)
            raise
        self._confirm(temp.id, confirmed)
        return confirmed

    async def _change_offer_status(self, transition: OfferTransition, endpoint_action: str) -> Offer:
        """Cancel/accept/reject: optimistic status bubble, action call, then re-fetch."""
        offer = self._pending_offer
        event = self._optimistic_status_event(offer, transition)
        self._add_optimistic(event)

        try:
            await self._call(
                f"{endpoint_action} offer",
                lambda: self.backend.offer_action(offer.id, endpoint_action),
            )
        except ChatException:
            self._drop_optimistic(event.id)
            await self._refresh_quietly()
            raise

        self._settle(event.id)
        await self._refresh_quietly()
        logger.info(f"Offer {offer.id}: {transition.from_status} -> {transition.to_status}")
        return event.offer

    async def _refresh_quietly(self) -> None:
        """Best-effort re-fetch after a mutation; failures wait for the next poll."""
        if not self.is_active:
            return
        try:
            await self.refresh()
        except ChatException as e:
            logger.warning(f"Re-fetch after mutation failed: {e.code} - {e.message}")

    def _apply_snapshot(self, messages: list[Message]) -> None:
        self._server_messages = list(messages)
        server_ids = {message.id for message in self._server_messages}
        self._optimistic = [
            message for message in self._optimistic
            if message.id not in server_ids and message.id not in self._settled
        ]
        self._settled.clear()
        self._rebuild()

    def _add_optimistic(self, *messages: Message) -> None:
        self._optimistic.extend(messages)
        self._rebuild()

    def _drop_optimistic(self, *ids: str) -> None:
        self._optimistic = [message for message in self._optimistic if message.id not in ids]
        self._rebuild()

    def _settle(self, temp_id: str) -> None:
        self._settled.add(temp_id)
        self._rebuild()

    def _confirm(self, temp_id: str, confirmed: Message) -> None:
        """Swap a temporary message for the server's copy."""
        self._optimistic = [message for message in self._optimistic if message.id != temp_id]
        if not self.is_active:
            logger.debug(f"Discarding confirmation for closed conversation {self.conversation_id}")
            return
        if all(message.id != confirmed.id for message in self._server_messages):
            self._server_messages.append(confirmed)
        self._rebuild()

    def _rebuild(self) -> None:
        self._timeline = reconcile(self._server_messages, self._optimistic)
        # Settled entries count as confirmed so a confirmed terminal change clears the pointer
        self._pending_offer = latest_pending_offer(
            message for message in self._timeline
            if not message.is_optimistic or message.id in self._settled
        )

    def _optimistic_offer(self, price: Decimal, content: str) -> OfferEventMessage:
        temp_id = self._temp_id()
        return OfferEventMessage(
            id=temp_id,
            conversation_id=self.conversation_id,
            sender=self.auth.participant,
            content=content,
            offer=Offer(id=temp_id, price=price, status="Pending"),
            is_optimistic=True,
        )

    def _optimistic_status_event(self, offer: Offer, transition: OfferTransition) -> OfferEventMessage:
        """Status bubble that supersedes the offer's current one in reconciliation."""
        created_at = utc_now()
        for message in self._server_messages:
            if isinstance(message, OfferEventMessage) and message.offer.id == offer.id:
                # Must sort after the event it replaces even under clock skew
                if message.created_at >= created_at:
                    created_at = message.created_at + timedelta(milliseconds=1)
        return OfferEventMessage(
            id=self._temp_id(),
            conversation_id=self.conversation_id,
            sender=self.auth.participant,
            content=f"Offer {transition.to_status.lower()}",
            created_at=created_at,
            offer=apply_transition(offer, transition),
            is_optimistic=True,
        )

    def _ensure_active(self) -> None:
        if not self.is_active or self.conversation is None:
            raise SessionClosedError(self.conversation_id)

    @staticmethod
    def _temp_id() -> str:
        return f"temp-{uuid4().hex[:12]}"
