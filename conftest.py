"""
Pytest configuration and shared fixtures.

Environment defaults are set before any messagely import so the settings,
engine and logging pick up the test configuration. Values already present
in the environment (e.g. from .env.test) win.
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite:///./messagely_test.db")
os.environ.setdefault("LOG_LEVEL", "WARNING")
os.environ.setdefault("SECRET_KEY", "test-secret-key")
# bcrypt's minimum cost keeps the suite fast
os.environ.setdefault("BCRYPT_WORK_FACTOR", "4")

import pytest
from fastapi.testclient import TestClient

# Clear settings cache before any app imports to ensure test env vars are used
from messagely.config import get_settings
get_settings.cache_clear()

from messagely.main import app
from messagely.storage import Base, SessionLocal, engine


@pytest.fixture(scope="function")
def client():
    """Create test client with fresh database for each test."""
    Base.metadata.create_all(bind=engine)

    with TestClient(app) as test_client:
        yield test_client

    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def db():
    """Database session on fresh tables, for testing the services directly."""
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()

    yield session

    session.close()
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def work_factor():
    return get_settings().BCRYPT_WORK_FACTOR
