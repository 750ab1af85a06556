"""MongoDB/Beanie fixtures for testing."""

import os
from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio
from pymongo import AsyncMongoClient
from pymongo.asynchronous.database import AsyncDatabase

from app.schemas import DOCUMENT_MODELS, init_beanie_odm


@pytest.fixture(scope="session")
def mongo_url() -> str:
    """
    Get MongoDB URL for testing.

    Tests needing a real database are skipped when MONGO_URL_RELAY_PRIMARY is unset.
    """
    url = os.environ.get("MONGO_URL_RELAY_PRIMARY")
    if not url:
        pytest.skip("MONGO_URL_RELAY_PRIMARY environment variable not set for tests.")
    return url


@pytest.fixture(scope="session")
def test_db_name() -> str:
    """Get test database name."""
    return "relay_beanie_test_db"


@pytest_asyncio.fixture(scope="function")
async def mongo_client(mongo_url: str) -> AsyncGenerator[AsyncMongoClient]:
    """Create MongoDB client for testing (function-scoped to avoid event loop issues)."""
    client: AsyncMongoClient = AsyncMongoClient(mongo_url, tz_aware=True)
    yield client
    await client.close()


@pytest_asyncio.fixture(scope="function")
async def beanie_db(
    mongo_client: AsyncMongoClient,
    test_db_name: str,
) -> AsyncGenerator[AsyncDatabase]:
    """Initialize Beanie with all document models on the test database."""
    db = mongo_client[test_db_name]
    await init_beanie_odm(db)
    yield db


@pytest_asyncio.fixture(autouse=False)
async def clear_collections(beanie_db: AsyncDatabase) -> None:
    """
    Clear all collections before each test.

    Usage:
        @pytest.mark.usefixtures("clear_collections")
        async def test_something(beanie_db):
            ...
    """
    for model in DOCUMENT_MODELS:
        await model.get_pymongo_collection().delete_many({})
