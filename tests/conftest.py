"""Pytest configuration and fixtures"""
import os

import pytest

# Keep the process-wide storage in memory during tests
os.environ.setdefault("LOG_LEVEL", "DEBUG")
os.environ["UPSTASH_REDIS_REST_URL"] = ""
os.environ["UPSTASH_REDIS_REST_TOKEN"] = ""

from storefront.cart import CartStore
from storefront.events import EventBus
from storefront.identity import StaticIdentityProvider
from storefront.storage import MemoryStorage, SharedStorageArea


@pytest.fixture
def area():
    """Storage area shared by every context (tab) of one origin"""
    return SharedStorageArea()


@pytest.fixture
def events():
    return EventBus()


@pytest.fixture
def storage(area, events):
    """Storage as seen from one tab"""
    return area.open_context(events)


@pytest.fixture
def identity():
    """Guest session; call identity.switch("1") to log in"""
    return StaticIdentityProvider()


@pytest.fixture
def make_store(storage, identity, events):
    """Factory for cart stores on the shared fixtures, closed after the test"""
    stores = []

    def factory(storage=storage, identity=identity, events=events):
        store = CartStore(storage, identity, events=events)
        stores.append(store)
        return store

    yield factory

    for store in stores:
        store.close()


@pytest.fixture
def sample_product():
    """Sample product as returned by the catalog endpoint"""
    return {
        "id": 1,
        "name": "Wireless Mouse",
        "price": 10,
        "imageUrl": "https://cdn.example.com/mouse.png",
        "description": "Two-button mouse",
        "category": "accessories",
    }


@pytest.fixture
def second_product():
    return {
        "id": 2,
        "name": "USB-C Cable",
        "price": 4.5,
        "imageUrl": None,
    }


@pytest.fixture
def standalone_storage():
    """Storage without other tabs"""
    return MemoryStorage()
