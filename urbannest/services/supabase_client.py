"""Supabase gateway: auth, table, storage and realtime calls used by the view-models."""

import inspect
import re
import secrets
import time
from contextlib import asynccontextmanager
from typing import Any, Callable, Optional

from supabase import AsyncClient, acreate_client

from urbannest.models.bookmark import Bookmark
from urbannest.utils.config import AppConfig
from urbannest.utils.errors import SchemaMismatchError, SupabaseError
from urbannest.utils.logging import get_structured_logger, log_timing, mask_user_id

logger = get_structured_logger(__name__)

# PostgREST: "Could not find the 'sqft' column of 'listings' in the schema cache"
# Postgres:  column "sqft" of relation "listings" does not exist
_MISSING_COLUMN_PATTERNS = (
    re.compile(r"could not find the '([^']+)' column", re.IGNORECASE),
    re.compile(r'column "([^"]+)"(?: of relation "[^"]+")? does not exist', re.IGNORECASE),
)

LISTING_IMMUTABLE_FIELDS = ("id", "created_at", "owner_id")

# PostgREST PGRST202: "Could not find the function public.toggle_bookmark(...) in the schema cache"
# Postgres 42883:    function toggle_bookmark(uuid, uuid) does not exist
_MISSING_FUNCTION_CODES = ("PGRST202", "42883")
_MISSING_FUNCTION_PATTERN = re.compile(r"could not find the function|function .+ does not exist", re.IGNORECASE)


def error_text(error: BaseException) -> str:
    """Best human-readable text for a client library error."""
    message = getattr(error, "message", None)
    return str(message) if message else str(error)


def detect_missing_column(text: str) -> Optional[str]:
    """Return the column name when an error reports a schema mismatch."""
    for pattern in _MISSING_COLUMN_PATTERNS:
        match = pattern.search(text)
        if match:
            return match.group(1)
    if "schema cache" in text.lower():
        return ""
    return None


def is_missing_function(error: BaseException) -> bool:
    """True when an RPC failed because the database has no such function."""
    if getattr(error, "code", None) in _MISSING_FUNCTION_CODES:
        return True
    return bool(_MISSING_FUNCTION_PATTERN.search(error_text(error)))


def build_storage_path(extension: str, prefix: Optional[str] = None) -> str:
    """Unique object path such as listings/1718000000000-k3j2h1g0.jpg."""
    prefix = prefix or AppConfig.STORAGE_PREFIX
    extension = (extension or "jpg").lstrip(".").lower()
    millis = int(time.time() * 1000)
    return f"{prefix}/{millis}-{secrets.token_hex(4)}.{extension}"


async def create_supabase_client() -> AsyncClient:
    """Create an async Supabase client from environment configuration."""
    url, key = AppConfig.supabase_credentials()
    client = await acreate_client(url, key)
    logger.info("Supabase client initialized", supabase_url=url)
    return client


class SupabaseGateway:
    """Thin request/response wrapper over one Supabase client.

    Every method raises SupabaseError on failure; callers decide whether a
    failure is surfaced to the user or only logged.
    """

    def __init__(self, client: AsyncClient, bucket: Optional[str] = None):
        self.client = client
        self.bucket = bucket or AppConfig.STORAGE_BUCKET

    @classmethod
    async def from_env(cls) -> "SupabaseGateway":
        return cls(await create_supabase_client())

    @asynccontextmanager
    async def _operation(self, name: str, **context: Any):
        """Time one remote call and normalise its failure into SupabaseError."""
        with log_timing(name, logger=logger, **context):
            try:
                yield
            except SupabaseError:
                raise
            except Exception as e:
                text = error_text(e)
                logger.error(
                    "Supabase operation error",
                    operation=name,
                    error=text,
                    error_type=type(e).__name__,
                    **context
                )
                raise SupabaseError(f"Failed to {name.replace('_', ' ')}: {text}") from e

    # Auth

    async def sign_up(self, email: str, password: str, full_name: str, role: str) -> Optional[str]:
        """Register a new account; returns the new user ID when the provider creates one."""
        async with self._operation("sign_up"):
            response = await self.client.auth.sign_up({
                "email": email,
                "password": password,
                "options": {"data": {"full_name": full_name, "role": role}},
            })
            user = getattr(response, "user", None)
            return user.id if user else None

    async def sign_in(self, email: str, password: str) -> None:
        async with self._operation("sign_in"):
            await self.client.auth.sign_in_with_password({"email": email, "password": password})

    async def sign_out(self) -> None:
        async with self._operation("sign_out"):
            await self.client.auth.sign_out()

    async def get_session_user_id(self) -> Optional[str]:
        """User ID of the restored session, or None when signed out."""
        async with self._operation("get_session"):
            session = await self.client.auth.get_session()
            return session.user.id if session and session.user else None

    def on_auth_state_change(self, callback: Callable[[Optional[str]], None]) -> Callable[[], None]:
        """Subscribe to auth changes; callback receives the session user ID or None.

        Returns an unsubscribe callable.
        """
        def _on_change(event, session) -> None:
            user_id = session.user.id if session and getattr(session, "user", None) else None
            logger.debug("Auth state changed", auth_event=str(event), user_id=mask_user_id(user_id))
            callback(user_id)

        subscription = self.client.auth.on_auth_state_change(_on_change)
        return subscription.unsubscribe

    # Profiles

    async def get_profile(self, user_id: str) -> Optional[dict]:
        async with self._operation("get_profile", user_id=mask_user_id(user_id)):
            result = await self.client.table("profiles").select("*").eq("id", user_id).execute()
            return result.data[0] if result.data else None

    async def get_profiles_by_ids(self, user_ids: list[str]) -> list[dict]:
        if not user_ids:
            return []
        async with self._operation("get_profiles_by_ids", count=len(user_ids)):
            result = await self.client.table("profiles").select("*").in_("id", list(user_ids)).execute()
            return result.data if result.data else []

    async def upsert_profile(self, profile_data: dict) -> None:
        async with self._operation("upsert_profile", user_id=mask_user_id(profile_data.get("id"))):
            await self.client.table("profiles").upsert(profile_data).execute()

    async def update_profile(self, user_id: str, updates: dict) -> dict:
        async with self._operation("update_profile", user_id=mask_user_id(user_id)):
            result = await self.client.table("profiles").update(updates).eq("id", user_id).execute()
            if result.data:
                return result.data[0]
            raise SupabaseError(f"Failed to update profile: {user_id}")

    # Listings

    async def get_listings(self) -> list[dict]:
        """All listings, newest first."""
        async with self._operation("get_listings"):
            result = await self.client.table("listings").select("*").order("created_at", desc=True).execute()
            return result.data if result.data else []

    async def get_owner_listings(self, owner_id: str) -> list[dict]:
        """Listings published by one owner, newest first."""
        async with self._operation("get_owner_listings", owner_id=mask_user_id(owner_id)):
            result = (
                await self.client.table("listings")
                .select("*")
                .eq("owner_id", owner_id)
                .order("created_at", desc=True)
                .execute()
            )
            return result.data if result.data else []

    async def get_listings_by_ids(self, listing_ids: list[str]) -> list[dict]:
        if not listing_ids:
            return []
        async with self._operation("get_listings_by_ids", count=len(listing_ids)):
            result = (
                await self.client.table("listings")
                .select("*")
                .in_("id", list(listing_ids))
                .order("created_at", desc=True)
                .execute()
            )
            return result.data if result.data else []

    async def create_listing(self, listing_data: dict) -> dict:
        try:
            async with self._operation("create_listing"):
                result = await self.client.table("listings").insert(listing_data).execute()
                if result.data:
                    return result.data[0]
                raise SupabaseError("Failed to create listing: no data returned")
        except SupabaseError as e:
            raise self._classify_write_error(e)

    async def update_listing(self, listing_id: str, updates: dict) -> dict:
        clean = {k: v for k, v in updates.items() if k not in LISTING_IMMUTABLE_FIELDS}
        try:
            async with self._operation("update_listing", listing_id=listing_id):
                result = await self.client.table("listings").update(clean).eq("id", listing_id).execute()
                if result.data:
                    return result.data[0]
                raise SupabaseError(f"Failed to update listing: {listing_id}")
        except SupabaseError as e:
            raise self._classify_write_error(e)

    async def delete_listing(self, listing_id: str) -> None:
        async with self._operation("delete_listing", listing_id=listing_id):
            await self.client.table("listings").delete().eq("id", listing_id).execute()

    @staticmethod
    def _classify_write_error(error: SupabaseError) -> SupabaseError:
        column = detect_missing_column(str(error))
        if column is None or isinstance(error, SchemaMismatchError):
            return error
        schema_error = SchemaMismatchError(str(error), column=column or None)
        schema_error.__cause__ = error
        return schema_error

    # Messages

    async def send_message(self, sender_id: str, receiver_id: str, listing_id: str, content: str) -> dict:
        async with self._operation("send_message", listing_id=listing_id):
            result = await self.client.table("messages").insert({
                "sender_id": sender_id,
                "receiver_id": receiver_id,
                "listing_id": listing_id,
                "content": content,
            }).execute()
            if result.data:
                return result.data[0]
            raise SupabaseError("Failed to send message: no data returned")

    async def get_conversation_messages(self, user_id: str, other_id: str, listing_id: str) -> list[dict]:
        """Full history between two users for one listing, oldest first."""
        pair_filter = (
            f"and(sender_id.eq.{user_id},receiver_id.eq.{other_id}),"
            f"and(sender_id.eq.{other_id},receiver_id.eq.{user_id})"
        )
        async with self._operation("get_conversation_messages", listing_id=listing_id):
            result = (
                await self.client.table("messages")
                .select("*")
                .eq("listing_id", listing_id)
                .or_(pair_filter)
                .order("created_at", desc=False)
                .execute()
            )
            return result.data if result.data else []

    async def get_user_messages(self, user_id: str) -> list[dict]:
        """Every message the user sent or received, newest first, with the listing title joined."""
        async with self._operation("get_user_messages", user_id=mask_user_id(user_id)):
            result = (
                await self.client.table("messages")
                .select("*, listings:listing_id(title)")
                .or_(f"sender_id.eq.{user_id},receiver_id.eq.{user_id}")
                .order("created_at", desc=True)
                .execute()
            )
            return result.data if result.data else []

    # Bookmarks

    async def get_bookmarks(self, user_id: str) -> list[Bookmark]:
        """The user's bookmark rows, most recently saved first."""
        async with self._operation("get_bookmarks", user_id=mask_user_id(user_id)):
            result = (
                await self.client.table("bookmarks")
                .select("*")
                .eq("user_id", user_id)
                .order("created_at", desc=True)
                .execute()
            )
            return [Bookmark(**row) for row in (result.data or [])]

    async def toggle_bookmark(self, user_id: str, listing_id: str) -> bool:
        """Flip membership; returns True when the listing is now bookmarked."""
        try:
            # Atomic insert-or-delete keyed on the (user_id, listing_id) unique constraint
            result = await self.client.rpc(
                "toggle_bookmark", {"p_user_id": user_id, "p_listing_id": listing_id}
            ).execute()
        except Exception as e:
            if not is_missing_function(e):
                # The RPC may have committed; retrying as select then write could flip twice
                logger.error("toggle_bookmark RPC failed", listing_id=listing_id, error=error_text(e))
                raise SupabaseError(f"Failed to toggle bookmark: {error_text(e)}") from e
            logger.debug("toggle_bookmark RPC not installed, using select then write", error=error_text(e))
        else:
            if isinstance(result.data, bool):
                return result.data
            logger.error("toggle_bookmark RPC returned no state", listing_id=listing_id, data=repr(result.data))
            raise SupabaseError("Failed to toggle bookmark: toggle_bookmark returned no state")

        # Check-then-act: concurrent toggles from two sessions of the same user can race here
        async with self._operation("toggle_bookmark", listing_id=listing_id):
            existing = (
                await self.client.table("bookmarks")
                .select("id")
                .eq("user_id", user_id)
                .eq("listing_id", listing_id)
                .execute()
            )
            if existing.data:
                await self.client.table("bookmarks").delete().eq("id", existing.data[0]["id"]).execute()
                return False
            await self.client.table("bookmarks").insert({"user_id": user_id, "listing_id": listing_id}).execute()
            return True

    # Storage

    async def upload_image(self, content: bytes, extension: str, content_type: str) -> str:
        """Upload raw image bytes; returns the public URL."""
        path = build_storage_path(extension)
        async with self._operation("upload_image", path=path, size_bytes=len(content)):
            bucket = self.client.storage.from_(self.bucket)
            await bucket.upload(path, content, {"content-type": content_type})
            url = bucket.get_public_url(path)
            if inspect.isawaitable(url):
                url = await url
            return url

    # Realtime

    async def subscribe_message_inserts(self, callback: Callable[[dict], None]):
        """Open a channel delivering every inserted messages row; returns the channel."""
        async with self._operation("subscribe_message_inserts"):
            channel = self.client.channel(AppConfig.REALTIME_CHANNEL)
            channel.on_postgres_changes(
                "INSERT",
                schema="public",
                table="messages",
                callback=lambda payload: callback(extract_inserted_row(payload)),
            )
            await channel.subscribe()
            return channel

    async def remove_channel(self, channel) -> None:
        async with self._operation("remove_channel"):
            await self.client.remove_channel(channel)


def extract_inserted_row(payload: Any) -> dict:
    """Pull the new row out of a realtime postgres_changes payload."""
    if not isinstance(payload, dict):
        return {}
    data = payload.get("data")
    if isinstance(data, dict) and isinstance(data.get("record"), dict):
        return data["record"]
    for key in ("new", "record"):
        if isinstance(payload.get(key), dict):
            return payload[key]
    return {}
