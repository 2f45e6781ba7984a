"""Fixtures for service tests: a saved MySQL profile served by FakeAdapter."""

import pytest_asyncio

from dbexplorer.config.models import ConnectionProfile


@pytest_asyncio.fixture
async def saved_id(fake_connections, sample_profile_data) -> str:
    return await fake_connections.save(ConnectionProfile(**sample_profile_data))
