"""Bookmark model."""

from typing import Optional
from pydantic import BaseModel, Field


class Bookmark(BaseModel):
    """A renter's saved reference to a listing; unique per (user_id, listing_id)."""
    id: Optional[str] = None
    user_id: str = Field(..., description="Profile ID")
    listing_id: str = Field(..., description="Listing ID")
    created_at: Optional[str] = None
