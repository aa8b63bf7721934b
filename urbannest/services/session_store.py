"""Session state: the signed-in user's profile, published to subscribers."""

import asyncio
from datetime import datetime, timezone
from typing import Callable, Optional

from urbannest.models.action import ActionResult
from urbannest.models.profile import Profile, UserRole
from urbannest.utils.errors import SupabaseError
from urbannest.utils.logging import get_structured_logger, mask_user_id

logger = get_structured_logger(__name__)

ProfileListener = Callable[[Optional[Profile]], None]


class SessionStore:
    """Tracks "who is logged in" as a single nullable Profile.

    The store is injected into whatever needs the current user. `start()`
    restores an existing session and subscribes to auth changes; `close()`
    removes that subscription and cancels pending profile fetches.
    """

    def __init__(self, gateway):
        self.gateway = gateway
        self._user: Optional[Profile] = None
        self._listeners: list[ProfileListener] = []
        self._unsubscribe_auth: Optional[Callable[[], None]] = None
        self._pending: set[asyncio.Task] = set()
        # Bumped on every auth transition so late profile fetches are dropped
        self._generation = 0

    @property
    def user(self) -> Optional[Profile]:
        return self._user

    @property
    def user_id(self) -> Optional[str]:
        return self._user.id if self._user else None

    def subscribe(self, listener: ProfileListener) -> Callable[[], None]:
        """Register a listener; returns a callable that removes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _publish(self, profile: Optional[Profile]) -> None:
        self._user = profile
        for listener in list(self._listeners):
            try:
                listener(profile)
            except Exception as e:
                logger.error("Session listener failed", error=str(e), exc_info=True)

    async def start(self) -> None:
        """Restore any existing session, then follow auth changes until close()."""
        if self._unsubscribe_auth is None:
            self._unsubscribe_auth = self.gateway.on_auth_state_change(self._on_auth_change)

        try:
            user_id = await self.gateway.get_session_user_id()
        except SupabaseError as e:
            logger.warning("Session restore failed", error=str(e))
            user_id = None

        if user_id:
            await self._refresh(user_id, self._next_generation())
        logger.info("Session store started", signed_in=self._user is not None)

    def _next_generation(self) -> int:
        self._generation += 1
        return self._generation

    def _on_auth_change(self, user_id: Optional[str]) -> None:
        generation = self._next_generation()
        if not user_id:
            self._publish(None)
            return
        task = asyncio.get_running_loop().create_task(self._refresh(user_id, generation))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _refresh(self, user_id: str, generation: int) -> None:
        """Fetch and publish the profile; a failed fetch signs the UI out."""
        try:
            row = await self.gateway.get_profile(user_id)
            profile = Profile(**row) if row else None
            if profile is None:
                logger.warning("No profile row for session user", user_id=mask_user_id(user_id))
        except Exception as e:
            logger.warning("Profile fetch failed", user_id=mask_user_id(user_id), error=str(e))
            profile = None

        if generation != self._generation:
            logger.debug("Discarding stale profile fetch", user_id=mask_user_id(user_id))
            return
        self._publish(profile)

    async def wait_for_pending(self) -> None:
        """Await profile fetches started by auth events."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def sign_in(self, email: str, password: str) -> ActionResult:
        try:
            await self.gateway.sign_in(email, password)
        except SupabaseError as e:
            return ActionResult.failure(str(e.__cause__ or e))
        return ActionResult.success()

    async def sign_up(self, email: str, password: str, full_name: str, role: UserRole) -> ActionResult:
        """Create the account and its profile row; the user signs in afterwards."""
        if not full_name or not full_name.strip():
            return ActionResult.failure("Please enter your full name.")
        role = UserRole(role)
        try:
            user_id = await self.gateway.sign_up(email, password, full_name.strip(), role.value)
            if user_id:
                await self.gateway.upsert_profile({
                    "id": user_id,
                    "email": email,
                    "full_name": full_name.strip(),
                    "role": role.value,
                    "created_at": datetime.now(timezone.utc).isoformat(),
                })
        except SupabaseError as e:
            return ActionResult.failure(str(e.__cause__ or e))

        logger.info("Account created", user_id=mask_user_id(user_id), role=role.value)
        return ActionResult.success("Success! Please sign in with your new account.", value=user_id)

    async def logout(self) -> None:
        """Sign out and clear the user right away instead of waiting for the auth event."""
        self._next_generation()
        try:
            await self.gateway.sign_out()
        except SupabaseError as e:
            logger.warning("Sign-out call failed", error=str(e))
        self._publish(None)

    async def update_profile(self, full_name: str, avatar_url: Optional[str] = None) -> ActionResult:
        if self._user is None:
            return ActionResult.failure(login_required=True)
        updates = {"full_name": full_name, "avatar_url": avatar_url or None}
        try:
            row = await self.gateway.update_profile(self._user.id, updates)
        except SupabaseError as e:
            return ActionResult.failure(f"Error: {e}")
        self._publish(Profile(**row))
        return ActionResult.success("Profile updated successfully!")

    async def close(self) -> None:
        """Drop the auth subscription and any in-flight profile fetch."""
        if self._unsubscribe_auth is not None:
            self._unsubscribe_auth()
            self._unsubscribe_auth = None
        self._next_generation()
        for task in list(self._pending):
            task.cancel()
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)
        self._pending.clear()
        self._listeners.clear()
        logger.info("Session store closed")
