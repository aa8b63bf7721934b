"""Listing models."""

from typing import Any, Optional
from pydantic import BaseModel, Field


class Listing(BaseModel):
    """Rental property advertisement as stored in the listings table."""
    id: str = Field(..., description="Listing ID (uuid)")
    owner_id: str = Field(..., description="Profile ID of the publishing owner")
    title: str = Field(default="", description="Ad headline")
    description: str = Field(default="", description="Free-text description")
    location: str = Field(default="", description="Street or neighbourhood")
    area: str = Field(default="", description="City area, e.g. Gulshan")
    rent: float = Field(default=0, ge=0, description="Monthly rent")
    sqft: float = Field(default=0, ge=0, description="Floor area in square feet")
    bedrooms: int = Field(default=0, ge=0)
    bathrooms: int = Field(default=0, ge=0)
    balconies: int = Field(default=0, ge=0)
    category: str = Field(default="", description="Apartment, Bachelors, Sublet, ...")
    features: list[str] = Field(default_factory=list, description="Amenity tags")
    images: list[str] = Field(default_factory=list, description="Public image URLs")
    thumbnail: Optional[str] = Field(None, description="First image, used on cards")
    is_available: bool = Field(default=True)
    is_verified: bool = Field(default=False)
    created_at: Optional[str] = None

    @classmethod
    def from_row(cls, row: dict) -> "Listing":
        """Build from a table row; NULL in any column with a default takes the default.

        Rows written before sqft/balconies existed hold NULL there.
        """
        data = dict(row)
        for key, field in cls.model_fields.items():
            if data.get(key) is None and not field.is_required():
                data[key] = field.get_default(call_default_factory=True)
        return cls(**data)


class ListingPayload(BaseModel):
    """Record written by the publication workflow (insert or update)."""
    owner_id: str
    title: str
    description: str = ""
    location: str
    area: str
    rent: float = Field(..., ge=0)
    sqft: float = Field(default=0, ge=0)
    bedrooms: int = Field(default=0, ge=0)
    bathrooms: int = Field(default=0, ge=0)
    balconies: int = Field(default=0, ge=0)
    category: str
    features: list[str] = Field(default_factory=list)
    images: list[str]
    thumbnail: str
    is_available: bool = True

    def model_post_init(self, __context: Any) -> None:
        """A persisted listing always has at least one image and thumbnail == images[0]."""
        if not self.images:
            raise ValueError("At least one image is required.")
        if self.thumbnail != self.images[0]:
            raise ValueError("thumbnail must equal the first image")
