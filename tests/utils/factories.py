"""Test data factories using Faker."""

from faker import Faker
from typing import Optional

fake = Faker()

AREAS = ["Gulshan", "Banani", "Dhanmondi", "Uttara", "Mirpur"]


def create_profile_data(role: str = "renter", user_id: Optional[str] = None) -> dict:
    """Create a profiles table row."""
    return {
        "id": user_id or fake.uuid4(),
        "email": fake.email(),
        "full_name": fake.name(),
        "role": role,
        "avatar_url": None,
        "created_at": "2024-12-01T09:00:00+00:00",
    }


def create_listing_data(owner_id: Optional[str] = None, **overrides) -> dict:
    """Create a listings table row."""
    image = f"https://cdn.example.com/listings/{fake.uuid4()}.jpg"
    row = {
        "id": fake.uuid4(),
        "owner_id": owner_id or fake.uuid4(),
        "title": fake.sentence(nb_words=3).rstrip("."),
        "description": fake.text(max_nb_chars=120),
        "location": fake.street_address(),
        "area": fake.random_element(AREAS),
        "rent": fake.random_int(min=16000, max=90000),
        "sqft": fake.random_int(min=500, max=3000),
        "bedrooms": fake.random_int(min=1, max=5),
        "bathrooms": fake.random_int(min=1, max=4),
        "balconies": fake.random_int(min=0, max=3),
        "category": "Apartment",
        "features": ["Lift", "Generator"],
        "images": [image],
        "thumbnail": image,
        "is_available": True,
        "is_verified": False,
        "created_at": "2024-12-01T10:00:00+00:00",
    }
    row.update(overrides)
    return row


def create_legacy_listing_data(owner_id: Optional[str] = None, **overrides) -> dict:
    """A listings row written before sqft/balconies/is_verified were added: those columns are NULL."""
    row = create_listing_data(owner_id, sqft=None, balconies=None, is_verified=None, features=None)
    row.update(overrides)
    return row


def create_message_data(
    sender_id: str,
    receiver_id: str,
    listing_id: str,
    created_at: str,
    content: Optional[str] = None,
    message_id: Optional[str] = None,
) -> dict:
    """Create a messages table row."""
    return {
        "id": message_id or fake.uuid4(),
        "sender_id": sender_id,
        "receiver_id": receiver_id,
        "listing_id": listing_id,
        "content": content or fake.sentence(),
        "created_at": created_at,
    }


def postgres_timestamp(when: str) -> str:
    """Render an ISO timestamp the way Postgres prints timestamptz.

    Space separator, trailing fraction zeros dropped, "+00" offset:
    2024-12-09T12:00:01.120000+00:00 -> 2024-12-09 12:00:01.12+00
    """
    text = when.replace("T", " ", 1).replace("+00:00", "+00").replace("Z", "+00")
    if "." in text:
        stamp, offset = text[:-3], text[-3:]
        stamp = stamp.rstrip("0").rstrip(".")
        text = stamp + offset
    return text


# 1x1 transparent PNG
PNG_DATA_URI = (
    "data:image/png;base64,"
    "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR42mNkYPhfDwAChwGA60e6kgAAAABJRU5ErkJggg=="
)
