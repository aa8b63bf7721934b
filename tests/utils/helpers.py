"""Test helper functions."""

from unittest.mock import AsyncMock, MagicMock

QUERY_METHODS = ("select", "eq", "or_", "in_", "order", "insert", "update", "delete", "upsert", "limit")


def make_query(data=None) -> MagicMock:
    """A PostgREST-style builder: every filter returns the builder, execute() is awaitable."""
    query = MagicMock()
    for name in QUERY_METHODS:
        getattr(query, name).return_value = query
    query.execute = AsyncMock(return_value=MagicMock(data=data if data is not None else []))
    return query


def make_supabase_client(data=None) -> MagicMock:
    """MagicMock AsyncClient with one shared query builder behind client.table()."""
    client = MagicMock()
    client.query = make_query(data)
    client.table.return_value = client.query
    client.rpc.return_value.execute = AsyncMock(side_effect=Exception("function toggle_bookmark does not exist"))
    client.auth.sign_up = AsyncMock()
    client.auth.sign_in_with_password = AsyncMock()
    client.auth.sign_out = AsyncMock()
    client.auth.get_session = AsyncMock(return_value=None)
    client.remove_channel = AsyncMock()
    return client


def set_results(query: MagicMock, *results) -> None:
    """Make successive execute() calls return each data payload in turn."""
    query.execute = AsyncMock(side_effect=[MagicMock(data=data) for data in results])
