"""Tests for the application container."""

import pytest
from unittest.mock import AsyncMock, patch
from urbannest.app import UrbanNestApp


@pytest.mark.unit
@pytest.mark.asyncio
async def test_signed_out_factories(gateway):
    async with UrbanNestApp(gateway) as app:
        assert app.search_view().owner_id is None
        assert app.dashboard_view() is None
        assert app.saved_homes() is None
        assert app.conversation_list() is None
        assert app.conversation() is None
        assert app.bookmark_state("listing-x").user_id is None


@pytest.mark.unit
@pytest.mark.asyncio
async def test_owner_gets_dashboard(gateway, owner):
    gateway.session_user_id = owner.id

    async with UrbanNestApp(gateway) as app:
        dashboard = app.dashboard_view()
        assert dashboard.owner_id == owner.id
        assert app.publisher().user == owner


@pytest.mark.unit
@pytest.mark.asyncio
async def test_renter_has_no_dashboard(gateway, renter):
    gateway.session_user_id = renter.id

    async with UrbanNestApp(gateway) as app:
        assert app.dashboard_view() is None
        assert app.saved_homes().user_id == renter.id


@pytest.mark.unit
@pytest.mark.asyncio
async def test_conversations_share_one_channel(gateway, owner, renter):
    gateway.session_user_id = renter.id

    async with UrbanNestApp(gateway) as app:
        first = app.conversation()
        second = app.conversation()
        await first.open("listing-x", owner.id)
        await second.open("listing-y", owner.id)
        assert gateway.channels_opened == 1

    assert gateway.channels_removed == 1
    assert gateway.auth_callbacks == []


@pytest.mark.unit
@pytest.mark.asyncio
async def test_from_env_builds_gateway():
    with patch("urbannest.app.SupabaseGateway.from_env", new_callable=AsyncMock) as mock_from_env:
        app = await UrbanNestApp.from_env(configure_logging=False)

    mock_from_env.assert_awaited_once()
    assert app.gateway is mock_from_env.return_value
