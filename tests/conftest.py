"""
Shared fixtures: a temporary SQLite store, repositories and an in-memory
Redis broker.
"""
import os
import tempfile

import fakeredis
import pytest

from database.repositories import CommentRepository, TicketRepository
from database.sqlite_adapter import SQLiteAdapter
from dispatch.broker import Broker
from models.messages import CreateTicketRequest


@pytest.fixture
def temp_sqlite_db():
    """Create a temporary SQLite database path for testing."""
    with tempfile.TemporaryDirectory() as tmp_dir:
        yield os.path.join(tmp_dir, 'tickets.db')


@pytest.fixture
async def sqlite_adapter(temp_sqlite_db):
    """Create and initialize SQLite adapter for testing."""
    adapter = SQLiteAdapter(temp_sqlite_db, pool_size=3)
    await adapter.connect()
    yield adapter
    await adapter.disconnect()


@pytest.fixture
def ticket_repository(sqlite_adapter):
    return TicketRepository(sqlite_adapter)


@pytest.fixture
def comment_repository(sqlite_adapter):
    return CommentRepository(sqlite_adapter)


@pytest.fixture
def redis_server():
    return fakeredis.FakeServer()


@pytest.fixture
async def redis_client(redis_server):
    client = fakeredis.FakeAsyncRedis(server=redis_server, decode_responses=True)
    yield client
    await client.aclose()


@pytest.fixture
def broker(redis_client):
    return Broker(redis_client, reply_ttl=30)


def make_ticket_request(**overrides) -> CreateTicketRequest:
    """Build a valid create request; keyword arguments override fields."""
    values = {
        'issuer': 'support-desk',
        'owner': 'alice',
        'subject': 'Card declined',
        'content': 'My card was declined while paying the invoice.',
        'importance_level': 'HIGH',
        'metadata': '',
    }
    values.update(overrides)
    return CreateTicketRequest(**values)


@pytest.fixture
def ticket_request_factory():
    return make_ticket_request
