"""
Centralized Test Configuration.
"""

import pytest
from httpx import AsyncClient, ASGITransport

from crataegus.app.core.dependencies import get_ingestion_service, get_store
from crataegus.app.main import app
from crataegus.app.models.enums import UserCheckMode
from crataegus.app.services.ingestion import IngestionService
from crataegus.app.services.location_store import LocationStore
from crataegus.app.services.normalizer import CoordinateNormalizer, GeoidContext
from crataegus.tests.factories import PASSWORD, USERNAME, FakeTransformer


@pytest.fixture
def fake_transformer():
    return FakeTransformer()


@pytest.fixture
def geoid(fake_transformer):
    return GeoidContext(transformer_factory=lambda: fake_transformer)


@pytest.fixture
def normalizer(geoid):
    return CoordinateNormalizer(geoid)


@pytest.fixture
async def store(tmp_path):
    """Fresh SQLite store per test, with one registered user."""
    location_store = LocationStore.from_path(tmp_path / "locations.sqlite")
    await location_store.initialize()
    await location_store.add_user(USERNAME, PASSWORD)
    yield location_store
    await location_store.close()


@pytest.fixture
def service(store, normalizer):
    return IngestionService(store, normalizer)


@pytest.fixture
def strict_service(store, normalizer):
    return IngestionService(store, normalizer, UserCheckMode.STRICT)


@pytest.fixture
async def client(store, service):
    """Async client for testing, wired to the per-test store."""
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_ingestion_service] = lambda: service
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides = {}
