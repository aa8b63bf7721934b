"""Listing collection view-model: one full fetch, then in-memory search and category filters."""

from typing import Iterable, Optional

from pydantic import ValidationError

from urbannest.models.action import ActionResult
from urbannest.models.listing import Listing
from urbannest.utils.config import AppConfig
from urbannest.utils.errors import AuthorizationError, AuthRequiredError, SupabaseError
from urbannest.utils.logging import get_structured_logger, mask_user_id

logger = get_structured_logger(__name__)

ALL_CATEGORY = "All"
BUDGET_CATEGORY = "Budget"

# Categories that test a boolean column instead of listing.category
FLAG_CATEGORIES = {
    "Verified": "is_verified",
    "Available": "is_available",
}


def matches_search(listing: Listing, search: str) -> bool:
    """Case-insensitive substring match on title, location or area."""
    needle = (search or "").lower()
    if not needle:
        return True
    return any(needle in (value or "").lower() for value in (listing.title, listing.location, listing.area))


def matches_category(listing: Listing, category: Optional[str], budget_ceiling: Optional[float] = None) -> bool:
    if not category or category == ALL_CATEGORY:
        return True
    if category == BUDGET_CATEGORY:
        ceiling = AppConfig.BUDGET_RENT_CEILING if budget_ceiling is None else budget_ceiling
        return listing.rent <= ceiling
    flag = FLAG_CATEGORIES.get(category)
    if flag is not None:
        return getattr(listing, flag) is True
    return listing.category == category


def parse_listings(rows: Iterable[dict]) -> list[Listing]:
    """Build Listings from table rows, skipping rows that do not validate."""
    listings = []
    for row in rows:
        try:
            listings.append(Listing.from_row(row))
        except ValidationError as e:
            logger.warning("Skipping malformed listing row", listing_id=row.get("id"), error=str(e))
    return listings


def filter_listings(
    listings: Iterable[Listing],
    search: str = "",
    category: Optional[str] = ALL_CATEGORY,
    budget_ceiling: Optional[float] = None,
) -> list[Listing]:
    """Listings matching both search and category, in input order."""
    return [
        listing for listing in listings
        if matches_search(listing, search) and matches_category(listing, category, budget_ceiling)
    ]


class ListingCollection:
    """Backs the public search page (owner_id=None) and an owner's dashboard."""

    def __init__(self, gateway, owner_id: Optional[str] = None):
        self.gateway = gateway
        self.owner_id = owner_id
        self.listings: list[Listing] = []
        self.search = ""
        self.category = ALL_CATEGORY
        self.loading = False
        self.error: Optional[str] = None
        self.closed = False
        self._generation = 0

    @property
    def visible(self) -> list[Listing]:
        """Recomputed on every read from (listings, search, category)."""
        return filter_listings(self.listings, self.search, self.category)

    def set_search(self, text: str) -> list[Listing]:
        self.search = text or ""
        return self.visible

    def set_category(self, category: str) -> list[Listing]:
        self.category = category or ALL_CATEGORY
        return self.visible

    def reset_filters(self) -> list[Listing]:
        self.search = ""
        self.category = ALL_CATEGORY
        return self.visible

    async def load(self) -> list[Listing]:
        """Full reload, newest first. A failed fetch leaves an empty collection and a message."""
        self._generation += 1
        generation = self._generation
        self.loading = True
        self.error = None
        try:
            if self.owner_id:
                rows = await self.gateway.get_owner_listings(self.owner_id)
            else:
                rows = await self.gateway.get_listings()
            listings = parse_listings(rows)
            error = None
        except SupabaseError as e:
            logger.warning("Listing fetch failed", owner_id=mask_user_id(self.owner_id), error=str(e))
            listings = []
            error = "Could not load listings. Please try again."

        if self.closed or generation != self._generation:
            logger.debug("Discarding late listing fetch", owner_id=mask_user_id(self.owner_id))
            return self.visible

        self.listings = listings
        self.error = error
        self.loading = False
        logger.info(
            "Listings loaded",
            owner_id=mask_user_id(self.owner_id),
            listings_count=len(self.listings)
        )
        return self.visible

    async def delete_listing(self, listing_id: str) -> ActionResult:
        """Owner dashboard delete; the local row goes only after the remote delete succeeds."""
        try:
            await self.gateway.delete_listing(listing_id)
        except SupabaseError as e:
            return ActionResult.failure(f"Error deleting: {e}")
        self.listings = [listing for listing in self.listings if listing.id != listing_id]
        return ActionResult.success("Ad removed successfully.")

    def close(self) -> None:
        """The view went away; results of in-flight fetches are dropped."""
        self.closed = True
        self.loading = False


async def get_listing(gateway, listing_id: str) -> Optional[Listing]:
    """Detail-view lookup: full fetch, then find by ID."""
    rows = await gateway.get_listings()
    matches = parse_listings(row for row in rows if row.get("id") == listing_id)
    return matches[0] if matches else None


async def load_listing_for_edit(gateway, listing_id: str, user_id: Optional[str]) -> Listing:
    """Find a listing for the editor and make sure the current user owns it.

    Raises AuthRequiredError when nobody is signed in, and AuthorizationError
    when the listing is missing or another owner published it. The server enforces the same
    rule; this check only keeps the form from rendering.
    """
    if not user_id:
        raise AuthRequiredError("Sign in to edit listings.")
    listing = await get_listing(gateway, listing_id)
    if listing is None:
        raise AuthorizationError(f"Listing not found: {listing_id}")
    if listing.owner_id != user_id:
        logger.warning(
            "Edit refused for listing owned by another user",
            listing_id=listing_id,
            user_id=mask_user_id(user_id)
        )
        raise AuthorizationError("You don't have permission to edit this ad.")
    return listing
