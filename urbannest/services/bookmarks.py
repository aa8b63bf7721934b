"""Bookmark state for one listing card, and the saved-homes view."""

from typing import Optional

from urbannest.models.action import ActionResult
from urbannest.models.listing import Listing
from urbannest.services.listing_collection import parse_listings
from urbannest.utils.errors import SupabaseError
from urbannest.utils.logging import get_structured_logger, mask_user_id

logger = get_structured_logger(__name__)


class BookmarkState:
    """Whether `listing_id` is saved by the current user, with an optimistic toggle."""

    def __init__(self, gateway, listing_id: str, user_id: Optional[str]):
        self.gateway = gateway
        self.listing_id = listing_id
        self.user_id = user_id
        self.is_bookmarked = False
        self.busy = False
        self.closed = False

    async def load(self) -> bool:
        """Fetch the user's bookmark set once; any failure leaves the listing unsaved."""
        if not self.user_id:
            self.is_bookmarked = False
            return False
        try:
            bookmarks = await self.gateway.get_bookmarks(self.user_id)
            bookmarked = {bookmark.listing_id for bookmark in bookmarks}
        except SupabaseError as e:
            logger.warning(
                "Bookmark status check failed",
                listing_id=self.listing_id,
                user_id=mask_user_id(self.user_id),
                error=str(e)
            )
            bookmarked = set()
        if self.closed:
            return self.is_bookmarked
        self.is_bookmarked = self.listing_id in bookmarked
        return self.is_bookmarked

    def close(self) -> None:
        self.closed = True

    async def toggle(self) -> ActionResult:
        """Flip membership; the server's answer wins, failure restores the previous state."""
        if not self.user_id:
            return ActionResult.failure("Please login to bookmark listings.", login_required=True)

        previous = self.is_bookmarked
        self.is_bookmarked = not previous
        self.busy = True
        try:
            self.is_bookmarked = await self.gateway.toggle_bookmark(self.user_id, self.listing_id)
        except SupabaseError as e:
            self.is_bookmarked = previous
            logger.warning("Bookmark toggle failed", listing_id=self.listing_id, error=str(e))
            return ActionResult.failure("Could not update your saved homes. Please try again.", value=previous)
        finally:
            self.busy = False

        logger.info(
            "Bookmark toggled",
            listing_id=self.listing_id,
            user_id=mask_user_id(self.user_id),
            bookmarked=self.is_bookmarked
        )
        return ActionResult.success(value=self.is_bookmarked)


class SavedHomes:
    """The renter's saved listings, resolved from bookmark IDs."""

    def __init__(self, gateway, user_id: str):
        self.gateway = gateway
        self.user_id = user_id
        self.listings: list[Listing] = []
        self.error: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return not self.listings

    async def load(self) -> list[Listing]:
        self.error = None
        try:
            listing_ids = [bookmark.listing_id for bookmark in await self.gateway.get_bookmarks(self.user_id)]
            if not listing_ids:
                self.listings = []
                return self.listings
            rows = await self.gateway.get_listings_by_ids(listing_ids)
        except SupabaseError as e:
            logger.warning("Saved homes fetch failed", user_id=mask_user_id(self.user_id), error=str(e))
            self.listings = []
            self.error = "Could not load your saved homes."
            return self.listings

        wanted = set(listing_ids)
        self.listings = parse_listings(row for row in rows if row.get("id") in wanted)
        return self.listings
