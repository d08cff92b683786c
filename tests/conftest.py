"""Shared fixtures: isolated settings and an in-memory stand-in for the asyncpg pool."""

import os
import tempfile
from contextlib import asynccontextmanager
from unittest.mock import AsyncMock, MagicMock

import pytest

# Settings are read at import time, so point uploads at a scratch directory
# before any project module is imported.
os.environ.setdefault('MARKET_UPLOADS_DIR', tempfile.mkdtemp(prefix='market-uploads-'))
os.environ.setdefault('MARKET_OFFER_SWEEP_INTERVAL_SECONDS', '0')


class FakeTransaction:
    """Async context manager standing in for ``conn.transaction()``."""

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False


class FakePool:
    """Pool whose ``acquire()`` always yields the same mocked connection."""

    def __init__(self, conn):
        self.conn = conn

    @asynccontextmanager
    async def acquire(self):
        yield self.conn


def make_connection():
    conn = MagicMock()
    conn.fetch = AsyncMock(return_value=[])
    conn.fetchrow = AsyncMock(return_value=None)
    conn.fetchval = AsyncMock(return_value=None)
    conn.execute = AsyncMock(return_value='UPDATE 0')
    conn.transaction = MagicMock(return_value=FakeTransaction())
    return conn


@pytest.fixture
def conn():
    """A mocked asyncpg connection."""
    return make_connection()


@pytest.fixture
def pool(conn):
    """A pool handing out the mocked connection."""
    return FakePool(conn)
