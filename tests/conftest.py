"""
Test configuration and fixtures for the Datastore wrapper.

Provides a DatastoreDB wired to an in-memory client so builder behaviour
can be exercised end to end without the network.
"""

import sys
from datetime import datetime, timezone
from pathlib import Path

# Add parent directory to path so we can import datastore_wrapper
sys.path.insert(0, str(Path(__file__).parent.parent))

import pytest

from datastore_wrapper import DatastoreConfig, DatastoreDB, query
from tests.helpers import Account, FakeDatastoreClient, Plan, User


@pytest.fixture
def datastore_config():
    """Datastore configuration for testing."""
    return DatastoreConfig(
        project_id="test-project",
        database_id="",
        namespace=None,
        credentials_json=None,
        kind_prefix="",
        enable_debug_logging=False,
    )


@pytest.fixture
def fake_client():
    """In-memory Datastore client."""
    return FakeDatastoreClient(project="test-project")


@pytest.fixture
def db(datastore_config, fake_client):
    """DatastoreDB whose client is the in-memory fake."""
    handle = DatastoreDB(datastore_config)
    handle._client = fake_client
    return handle


@pytest.fixture
def seeded_users(db, fake_client):
    """Two users with different status values."""
    query(db, User).upsert_multi({
        "a": User(name="Alice", status="active", age=31),
        "b": User(name="Bob", status="inactive", age=42),
    })
    fake_client.calls.clear()
    return fake_client


@pytest.fixture
def many_users(db, fake_client):
    """Twenty-five active users named u00..u24 with ascending ages."""
    query(db, User).upsert_multi({
        f"u{i:02d}": User(name=f"user-{i:02d}", status="active", age=20 + i)
        for i in range(25)
    })
    fake_client.calls.clear()
    return fake_client


@pytest.fixture
def sample_account():
    """Sample account record."""
    return Account(
        owner="alice",
        plan=Plan.PRO,
        notes="long free text",
        tags=["beta", "eu"],
        created_at=datetime(2024, 1, 1, 10, 0, tzinfo=timezone.utc),
    )
