"""Application container: owns the gateway and the long-lived shared resources."""

from typing import Optional

from urbannest.services.bookmarks import BookmarkState, SavedHomes
from urbannest.services.listing_collection import ListingCollection
from urbannest.services.messaging import ConversationList, ConversationStream, RealtimeMessageHub
from urbannest.services.publication import PublicationWorkflow
from urbannest.services.session_store import SessionStore
from urbannest.services.supabase_client import SupabaseGateway
from urbannest.utils.logging import get_structured_logger
from urbannest.utils.logging_config import LoggingConfig

logger = get_structured_logger(__name__)


class UrbanNestApp:
    """Builds view-models over one gateway.

    The session store and the realtime hub live as long as the app; every
    view-model returned by the factory methods is per-view and cheap.
    """

    def __init__(self, gateway):
        self.gateway = gateway
        self.session = SessionStore(gateway)
        self.hub = RealtimeMessageHub(gateway)
        self._started = False

    @classmethod
    async def from_env(cls, configure_logging: bool = True) -> "UrbanNestApp":
        if configure_logging:
            LoggingConfig.setup_logging()
        return cls(await SupabaseGateway.from_env())

    async def start(self) -> None:
        if self._started:
            return
        await self.session.start()
        self._started = True

    async def shutdown(self) -> None:
        """Deterministic teardown: realtime channel first, then the auth subscription."""
        await self.hub.close()
        await self.session.close()
        self._started = False
        logger.info("UrbanNest app shut down")

    async def __aenter__(self) -> "UrbanNestApp":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if exc_type:
            logger.error("App stopped on error", error=str(exc_val), type=exc_type.__name__)
        await self.shutdown()
        return False

    def search_view(self) -> ListingCollection:
        return ListingCollection(self.gateway)

    def dashboard_view(self) -> Optional[ListingCollection]:
        """Owner dashboard; None when the current user is not an owner."""
        user = self.session.user
        if user is None or not user.is_owner:
            return None
        return ListingCollection(self.gateway, owner_id=user.id)

    def bookmark_state(self, listing_id: str) -> BookmarkState:
        return BookmarkState(self.gateway, listing_id, self.session.user_id)

    def saved_homes(self) -> Optional[SavedHomes]:
        if self.session.user_id is None:
            return None
        return SavedHomes(self.gateway, self.session.user_id)

    def conversation_list(self) -> Optional[ConversationList]:
        if self.session.user_id is None:
            return None
        return ConversationList(self.gateway, self.session.user_id)

    def conversation(self) -> Optional[ConversationStream]:
        if self.session.user_id is None:
            return None
        return ConversationStream(self.gateway, self.hub, self.session.user_id)

    def publisher(self) -> PublicationWorkflow:
        return PublicationWorkflow(self.gateway, self.session.user)
