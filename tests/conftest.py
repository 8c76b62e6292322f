import os

# Settings are read once; keep tests off Postgres and Redis
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ["CACHE_ENABLED"] = "false"

import pytest
from fastapi.testclient import TestClient

from stock_management.database import Database
from stock_management.main import app


# Create test database (SQLite in-memory for testing)
test_database = Database("sqlite://").open()

# Inject the handle; the lifespan uses it instead of opening its own
app.state.database = test_database


@pytest.fixture(scope="function")
def client():
    """Create test client with fresh database for each test."""
    # Create tables
    test_database.create_tables()

    with TestClient(app) as test_client:
        yield test_client

    # Drop tables after test
    test_database.drop_tables()


@pytest.fixture(scope="function")
def db_session():
    """Create database session for direct database access in tests."""
    test_database.create_tables()
    session = test_database.session()

    yield session

    session.close()
    test_database.drop_tables()
