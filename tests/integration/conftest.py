"""
Integration test fixtures.

The SDK talks to an in-memory FakeStore through FastAPI's TestClient, which
is an httpx.Client, so the real HttpTransport code path is exercised.
"""

import pytest
from fastapi.testclient import TestClient

from syncopate_sdk import HttpTransport, SyncopateClient

from .fakestore import FakeStore, create_app


@pytest.fixture
def store():
    """Empty fake store."""
    return FakeStore()


@pytest.fixture
def http_client(store):
    """httpx client bound to the fake store app."""
    with TestClient(create_app(store)) as client:
        yield client


@pytest.fixture
def db(http_client):
    """SyncopateClient with auto-created entity types and small batches."""
    transport = HttpTransport("http://testserver", client=http_client)
    with SyncopateClient(transport, batch_size=25) as client:
        yield client
