"""Tests for Listing and ListingPayload models."""

import pytest
from pydantic import ValidationError
from urbannest.models.listing import Listing, ListingPayload
from tests.utils.factories import create_legacy_listing_data, create_listing_data


def _payload(**overrides) -> dict:
    data = {
        "owner_id": "owner-1",
        "title": "Lake View Flat",
        "location": "Road 12",
        "area": "Gulshan",
        "rent": 25000,
        "category": "Apartment",
        "images": ["https://cdn/a.jpg", "https://cdn/b.jpg"],
        "thumbnail": "https://cdn/a.jpg",
    }
    data.update(overrides)
    return data


@pytest.mark.unit
def test_listing_from_row():
    """Test listing creation from a full table row."""
    row = create_listing_data(owner_id="owner-1")
    listing = Listing.from_row(row)

    assert listing.id == row["id"]
    assert listing.owner_id == "owner-1"
    assert listing.thumbnail == listing.images[0]
    assert listing.is_available is True


@pytest.mark.unit
def test_listing_from_row_tolerates_nulls():
    """NULL list and text columns become empty values."""
    listing = Listing.from_row({
        "id": "l1",
        "owner_id": "o1",
        "title": None,
        "features": None,
        "images": None,
    })

    assert listing.title == ""
    assert listing.features == []
    assert listing.images == []
    assert listing.is_verified is False


@pytest.mark.unit
def test_listing_from_row_null_numeric_and_flag_columns():
    row = create_legacy_listing_data(owner_id="owner-1", rent=None, bedrooms=None, is_available=None)
    listing = Listing.from_row(row)

    assert listing.sqft == 0
    assert listing.balconies == 0
    assert listing.rent == 0
    assert listing.bedrooms == 0
    assert listing.is_verified is False
    assert listing.is_available is True
    assert row["sqft"] is None


@pytest.mark.unit
def test_listing_from_row_still_requires_owner():
    with pytest.raises(ValidationError):
        Listing.from_row({"id": "l1", "owner_id": None})


@pytest.mark.unit
def test_listing_rejects_negative_rent():
    with pytest.raises(ValidationError):
        Listing(id="l1", owner_id="o1", rent=-1)


@pytest.mark.unit
def test_payload_valid():
    payload = ListingPayload(**_payload())

    assert payload.thumbnail == payload.images[0]
    assert payload.is_available is True
    assert payload.features == []


@pytest.mark.unit
def test_payload_requires_an_image():
    with pytest.raises(ValueError, match="At least one image is required"):
        ListingPayload(**_payload(images=[], thumbnail=""))


@pytest.mark.unit
def test_payload_thumbnail_must_be_first_image():
    with pytest.raises(ValueError, match="thumbnail must equal the first image"):
        ListingPayload(**_payload(thumbnail="https://cdn/b.jpg"))
