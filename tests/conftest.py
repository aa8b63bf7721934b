"""Shared pytest fixtures and configuration."""

import os
import pytest
from freezegun import freeze_time

# Set test environment variables before urbannest modules read them
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("SUPABASE_URL", "https://test.supabase.co")
os.environ.setdefault("SUPABASE_ANON_KEY", "test-anon-key")
os.environ.setdefault("LLM_PROVIDER", "anthropic")
os.environ.setdefault("LLM_MODEL", "claude-sonnet-4-20250514")
os.environ.setdefault("ANTHROPIC_API_KEY", "test-anthropic-key")
os.environ.setdefault("USE_LLM_ASSISTANT", "true")
os.environ.setdefault("LOG_MESSAGE_CONTENT", "true")

from urbannest.models.profile import Profile  # noqa: E402
from tests.utils.factories import create_listing_data, create_profile_data  # noqa: E402
from tests.utils.fakes import FakeGateway  # noqa: E402


@pytest.fixture
def gateway():
    """Empty in-memory gateway."""
    return FakeGateway()


@pytest.fixture
def owner(gateway):
    """An owner profile registered in the gateway."""
    row = create_profile_data(role="owner", user_id="owner-1")
    gateway.profiles[row["id"]] = row
    gateway.passwords[row["email"]] = "owner-pass"
    return Profile(**row)


@pytest.fixture
def renter(gateway):
    """A renter profile registered in the gateway."""
    row = create_profile_data(role="renter", user_id="renter-1")
    gateway.profiles[row["id"]] = row
    gateway.passwords[row["email"]] = "renter-pass"
    return Profile(**row)


@pytest.fixture
def owner_listing(gateway, owner):
    """One published listing owned by `owner`."""
    row = create_listing_data(owner_id=owner.id, id="listing-x", title="Lake View Flat", area="Gulshan")
    gateway.listings.append(row)
    return row


@pytest.fixture
def mock_supabase_client():
    """MagicMock AsyncClient whose query builder chains back to itself."""
    from tests.utils.helpers import make_supabase_client
    return make_supabase_client()


@pytest.fixture
def freeze_time_fixture():
    """Fixture for freezing time in tests."""
    with freeze_time("2024-12-09 12:00:00") as frozen_time:
        yield frozen_time
