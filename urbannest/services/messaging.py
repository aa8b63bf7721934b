"""Conversation list, per-conversation message stream, and the shared realtime hub."""

import asyncio
import bisect
import re
from datetime import datetime, timezone
from typing import Callable, Optional

from pydantic import ValidationError

from urbannest.models.action import ActionResult
from urbannest.models.message import Conversation, ConversationKey, Message
from urbannest.models.profile import Profile
from urbannest.utils.errors import SupabaseError
from urbannest.utils.logging import (
    get_structured_logger,
    mask_user_id,
    sanitize_message_text,
)

logger = get_structured_logger(__name__)

MessageListener = Callable[[Message], None]

# Postgres trims trailing zeros from fractional seconds (12:00:02.12)
_FRACTION = re.compile(r"(?<=:\d\d)\.(\d+)")


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse Postgres/realtime ISO timestamps ('Z', '+00', space separator, 1-9 fraction digits)."""
    if not value:
        return None
    text = value.strip().replace(" ", "T", 1)
    text = _FRACTION.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), text, count=1)
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    elif len(text) > 3 and text[-3] in "+-" and text[-2:].isdigit():
        text = text + ":00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def message_sort_key(message: Message) -> tuple:
    """Parsed created_at; unparseable timestamps sort after every parseable one, in arrival order."""
    parsed = parse_timestamp(message.created_at)
    return (0, parsed) if parsed is not None else (1,)


class RealtimeMessageHub:
    """One realtime subscription on message inserts, fanned out by conversation.

    The upstream channel delivers every inserted row with no server-side
    filter. Each row is routed to the listeners registered for its
    ConversationKey; rows nobody listens for are dropped.
    """

    def __init__(self, gateway):
        self.gateway = gateway
        self._channel = None
        self._listeners: dict[ConversationKey, list[MessageListener]] = {}
        self._lock = asyncio.Lock()

    @property
    def is_running(self) -> bool:
        return self._channel is not None

    async def start(self) -> None:
        async with self._lock:
            if self._channel is not None:
                return
            self._channel = await self.gateway.subscribe_message_inserts(self.dispatch)
            logger.info("Realtime message channel opened")

    def register(self, key: ConversationKey, listener: MessageListener) -> Callable[[], None]:
        """Listen for inserts in one conversation; returns an unregister callable."""
        self._listeners.setdefault(key, []).append(listener)

        def unregister() -> None:
            listeners = self._listeners.get(key)
            if listeners and listener in listeners:
                listeners.remove(listener)
                if not listeners:
                    del self._listeners[key]

        return unregister

    def listener_count(self, key: Optional[ConversationKey] = None) -> int:
        if key is not None:
            return len(self._listeners.get(key, []))
        return sum(len(listeners) for listeners in self._listeners.values())

    def dispatch(self, row: dict) -> None:
        """Route one inserted row to the listeners of its conversation."""
        try:
            message = Message(**row)
        except (ValidationError, TypeError) as e:
            logger.warning("Ignoring malformed realtime message row", error=str(e))
            return

        for listener in list(self._listeners.get(ConversationKey.of(message), [])):
            try:
                listener(message)
            except Exception as e:
                logger.error("Message listener failed", message_id=message.id, error=str(e), exc_info=True)

    async def close(self) -> None:
        """Tear down the channel; only when the whole messaging feature goes away."""
        async with self._lock:
            channel, self._channel = self._channel, None
            self._listeners.clear()
            if channel is None:
                return
            try:
                await self.gateway.remove_channel(channel)
            except SupabaseError as e:
                logger.warning("Realtime channel teardown failed", error=str(e))
            logger.info("Realtime message channel closed")


class ConversationStream:
    """Ordered, live message list for one (listing, counterparty) pair.

    Closed until `open()` is called. While open, history and pushed rows are
    merged by ID and kept in created_at order, so the same row seen via the
    history fetch and via realtime appears once.
    """

    def __init__(self, gateway, hub: RealtimeMessageHub, user_id: str):
        self.gateway = gateway
        self.hub = hub
        self.user_id = user_id
        self.listing_id: Optional[str] = None
        self.other_user_id: Optional[str] = None
        self.counterparty: Optional[Profile] = None
        self.messages: list[Message] = []
        self.error: Optional[str] = None
        self._ids: set[str] = set()
        self._unregister: Optional[Callable[[], None]] = None
        self._generation = 0

    @property
    def is_open(self) -> bool:
        return self.listing_id is not None and self.other_user_id is not None

    @property
    def key(self) -> Optional[ConversationKey]:
        if not self.is_open:
            return None
        return ConversationKey.for_pair(self.listing_id, self.user_id, self.other_user_id)

    def _belongs(self, message: Message) -> bool:
        return (
            self.is_open
            and message.listing_id == self.listing_id
            and message.involves(self.user_id, self.other_user_id)
        )

    def _merge(self, message: Message) -> bool:
        if message.id in self._ids:
            return False
        if parse_timestamp(message.created_at) is None:
            logger.warning("Message has an unparseable created_at", message_id=message.id, created_at=message.created_at)
        self._ids.add(message.id)
        bisect.insort_right(self.messages, message, key=message_sort_key)
        return True

    def _reset(self) -> None:
        self._generation += 1
        if self._unregister is not None:
            self._unregister()
            self._unregister = None
        self.listing_id = None
        self.other_user_id = None
        self.counterparty = None
        self.messages = []
        self._ids = set()
        self.error = None

    async def open(self, listing_id: str, other_user_id: str) -> list[Message]:
        """Enter Open(listing_id, other_user_id): subscribe, then fetch history and the counterparty."""
        if self.is_open and (self.listing_id, self.other_user_id) == (listing_id, other_user_id):
            return self.messages

        self._reset()
        generation = self._generation
        self.listing_id = listing_id
        self.other_user_id = other_user_id

        # Listen before fetching so rows inserted during the fetch are not lost
        await self.hub.start()
        self._unregister = self.hub.register(self.key, self._make_listener(generation))

        try:
            rows = await self.gateway.get_conversation_messages(self.user_id, other_user_id, listing_id)
        except SupabaseError as e:
            logger.warning("Message history fetch failed", listing_id=listing_id, error=str(e))
            rows = []
            if generation == self._generation:
                self.error = "Could not load messages."

        if generation != self._generation:
            logger.debug("Discarding history for a conversation that was left", listing_id=listing_id)
            return self.messages

        for row in rows:
            try:
                message = Message(**row)
            except (ValidationError, TypeError) as e:
                logger.warning("Ignoring malformed message history row", listing_id=listing_id, error=str(e))
                continue
            self._merge(message)

        try:
            profile_row = await self.gateway.get_profile(other_user_id)
        except SupabaseError as e:
            logger.warning("Counterparty profile fetch failed", user_id=mask_user_id(other_user_id), error=str(e))
            profile_row = None
        if generation == self._generation and profile_row:
            self.counterparty = Profile(**profile_row)

        logger.info(
            "Conversation opened",
            listing_id=listing_id,
            other_user_id=mask_user_id(other_user_id),
            messages_count=len(self.messages)
        )
        return self.messages

    def _make_listener(self, generation: int) -> MessageListener:
        def on_message(message: Message) -> None:
            if generation != self._generation or not self._belongs(message):
                return
            if self._merge(message):
                logger.debug(
                    "Realtime message appended",
                    message_id=message.id,
                    message_preview=sanitize_message_text(message.content, max_length=50)
                )
        return on_message

    async def send(self, content: str) -> ActionResult:
        """Insert a message; the committed row is merged by ID with its realtime copy."""
        text = (content or "").strip()
        if not text or not self.is_open:
            return ActionResult.failure()

        generation = self._generation
        try:
            row = await self.gateway.send_message(self.user_id, self.other_user_id, self.listing_id, text)
        except SupabaseError as e:
            return ActionResult.failure(f"Error: {e}")

        message = Message(**row)
        if generation == self._generation and self._belongs(message):
            self._merge(message)
        return ActionResult.success(value=message)

    def close(self) -> None:
        """Back to Closed; the shared realtime channel stays up."""
        self._reset()


class ConversationList:
    """One row per (counterparty, listing) the user has exchanged messages about."""

    def __init__(self, gateway, user_id: str):
        self.gateway = gateway
        self.user_id = user_id
        self.conversations: list[Conversation] = []

    async def load(self) -> list[Conversation]:
        """Newest conversation first; fetch failures are logged and yield an empty list."""
        try:
            rows = await self.gateway.get_user_messages(self.user_id)
        except SupabaseError as e:
            logger.warning("Conversation list fetch failed", user_id=mask_user_id(self.user_id), error=str(e))
            self.conversations = []
            return self.conversations

        latest: dict[tuple[str, str], dict] = {}
        for row in rows:
            counterparty = row["receiver_id"] if row["sender_id"] == self.user_id else row["sender_id"]
            # Rows arrive newest first, so the first row per key is the latest message
            latest.setdefault((counterparty, row["listing_id"]), row)

        counterparty_ids = sorted({key[0] for key in latest})
        try:
            profiles = {p["id"]: p for p in await self.gateway.get_profiles_by_ids(counterparty_ids)}
        except SupabaseError as e:
            logger.warning("Conversation participant lookup failed", error=str(e))
            profiles = {}

        conversations = []
        for (counterparty, listing_id), row in latest.items():
            profile = profiles.get(counterparty, {})
            listing = row.get("listings") or {}
            conversations.append(Conversation(
                listing_id=listing_id,
                participant_id=counterparty,
                participant_name=profile.get("full_name") or "Anonymous",
                participant_avatar_url=profile.get("avatar_url"),
                listing_title=listing.get("title"),
                last_message=row.get("content", ""),
                updated_at=row.get("created_at"),
            ))
        self.conversations = conversations
        return self.conversations
