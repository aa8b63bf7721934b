"""Chat message and derived conversation models."""

from typing import NamedTuple, Optional
from pydantic import BaseModel, Field


class Message(BaseModel):
    """Immutable chat message row, ordered by created_at ascending."""
    id: str = Field(..., description="Message ID")
    sender_id: str
    receiver_id: str
    listing_id: str
    content: str
    created_at: str = Field(..., description="ISO-8601 timestamp assigned by the database")

    def involves(self, user_a: str, user_b: str) -> bool:
        return {self.sender_id, self.receiver_id} == {user_a, user_b}

    def counterparty_of(self, user_id: str) -> str:
        return self.receiver_id if self.sender_id == user_id else self.sender_id


class ConversationKey(NamedTuple):
    """Identifies a thread: one listing, one unordered pair of users."""
    listing_id: str
    participants: frozenset

    @classmethod
    def for_pair(cls, listing_id: str, user_a: str, user_b: str) -> "ConversationKey":
        return cls(listing_id, frozenset((user_a, user_b)))

    @classmethod
    def of(cls, message: Message) -> "ConversationKey":
        return cls.for_pair(message.listing_id, message.sender_id, message.receiver_id)


class Conversation(BaseModel):
    """Summary row for the conversation list (derived, not stored)."""
    listing_id: str
    participant_id: str = Field(..., description="The other user in the thread")
    participant_name: str = Field(default="Anonymous")
    participant_avatar_url: Optional[str] = None
    listing_title: Optional[str] = None
    last_message: str = ""
    updated_at: Optional[str] = None
