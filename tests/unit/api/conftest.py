"""Fixtures for dispatcher and transport tests."""

import pytest

from dbexplorer.api import RequestDispatcher


@pytest.fixture
def dispatcher(fake_connections, settings) -> RequestDispatcher:
    return RequestDispatcher(fake_connections, settings)
