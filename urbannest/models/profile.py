"""Profile model - one row per authenticated user."""

from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field


class UserRole(str, Enum):
    """Marketplace roles."""
    RENTER = "renter"
    OWNER = "owner"


class Profile(BaseModel):
    """User profile stored in the profiles table."""
    id: str = Field(..., description="Auth user ID (uuid)")
    email: str = Field(..., description="Email address")
    full_name: str = Field(..., description="Display name")
    role: UserRole = Field(default=UserRole.RENTER, description="renter or owner")
    avatar_url: Optional[str] = Field(None, description="Avatar image URL")
    created_at: Optional[str] = None

    @property
    def is_owner(self) -> bool:
        return self.role == UserRole.OWNER
