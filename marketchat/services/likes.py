"""
Listing like/unlike with optimistic state.

WHAT: Toggle a listing's liked flag and like count
WHY: The heart icon must react instantly and survive flaky networks
HOW: Flip state first, send through the retry controller, treat an
     "already unliked" conflict as success, revert on any other failure
"""

from ..client.backend import MarketplaceBackend
from ..models.chat import AuthContext, ListingRef
from ..utils.exceptions import AuthError, IdempotentConflictError
from ..utils.logger import get_logger
from .retry import with_retry

logger = get_logger(__name__)


class ListingLikeState:
    """Liked flag and count for one listing, as shown to the signed-in user."""

    def __init__(
        self,
        listing: ListingRef,
        backend: MarketplaceBackend,
        auth: AuthContext,
        *,
        liked: bool = False,
        likes_count: int = 0,
        max_retries: int | None = None,
        retry_delay: float | None = None
    ):
        self.listing = listing
        self.backend = backend
        self.auth = auth
        self.liked = liked
        self.likes_count = likes_count
        self.max_retries = max_retries
        self.retry_delay = retry_delay

    async def toggle(self) -> bool:
        """
        Like or unlike the listing.

        Returns:
            The new liked state

        Raises:
            ChatException: The change failed after retries; state is reverted.
                An "already unliked" conflict while unliking is not an error.
                AuthError also fires the auth context's sign-in hook.
        """
        was_liked = self.liked
        self._apply(not was_liked)

        slug, product_id = self.listing.slug, self.listing.product_id
        send = self.backend.unlike_listing if was_liked else self.backend.like_listing

        async def operation():
            return await send(slug, product_id)

        action = "unlike" if was_liked else "like"
        try:
            await with_retry(operation, self.max_retries, self.retry_delay, label=f"{action} listing")
        except IdempotentConflictError as e:
            if was_liked and e.conflict in ("not_liked", "already_unliked"):
                logger.info(f"Listing {product_id} was already not liked on the server")
                return self.liked
            self._apply(was_liked)
            raise
        except AuthError:
            self._apply(was_liked)
            self.auth.auth_required()
            raise
        except Exception:
            self._apply(was_liked)
            raise

        logger.info(f"Successfully {action}d listing {product_id}")
        return self.liked

    def _apply(self, liked: bool) -> None:
        if liked == self.liked:
            return
        self.liked = liked
        self.likes_count = self.likes_count + 1 if liked else max(self.likes_count - 1, 0)
