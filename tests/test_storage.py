"""Tests for durable storage backends, identity resolution and the event bus"""
import json
from unittest.mock import Mock

import pytest

from storefront import storage as storage_module
from storefront.errors import StorageUnavailableError
from storefront.events import AuthChanged, EventBus, StorageChanged
from storefront.identity import StaticIdentityProvider, StoredIdentityProvider, cart_key_for
from storefront.storage import MemoryStorage, RedisStorage, StorageKeys


class TestStorageKeys:
    def test_cart_key_for_identity(self):
        assert StorageKeys.cart_key("12") == "identity:12"
        assert cart_key_for("abc") == "identity:abc"

    def test_cart_key_for_guest(self):
        assert StorageKeys.cart_key(None) == "guest"
        assert StorageKeys.cart_key("") == "guest"


class TestSharedStorageArea:
    """Tests for the in-process storage area."""

    def test_get_set_remove(self, storage):
        assert storage.get_item("k") is None

        storage.set_item("k", "v")
        assert storage.get_item("k") == "v"

        storage.remove_item("k")
        assert storage.get_item("k") is None

    def test_contexts_share_data(self, area):
        first = area.open_context()
        second = area.open_context()

        first.set_item("k", "v")

        assert second.get_item("k") == "v"

    def test_changes_are_announced_to_other_contexts_only(self, area):
        writer_events, reader_events = EventBus(), EventBus()
        writer = area.open_context(writer_events)
        area.open_context(reader_events)
        writer_seen, reader_seen = [], []
        writer_events.on_external_change(writer_seen.append)
        reader_events.on_external_change(reader_seen.append)

        writer.set_item("guest", "[]")
        writer.remove_item("guest")
        writer.remove_item("missing")

        assert writer_seen == []
        assert reader_seen == ["guest", "guest"]

    def test_disabled_area_raises(self, area, storage):
        area.disable()

        with pytest.raises(StorageUnavailableError):
            storage.get_item("k")
        with pytest.raises(StorageUnavailableError):
            storage.set_item("k", "v")

    def test_quota_exceeded_raises_and_keeps_old_value(self, area, storage):
        area.quota = 10
        storage.set_item("k", "12345")

        with pytest.raises(StorageUnavailableError):
            storage.set_item("k", "123456789012")

        assert storage.get_item("k") == "12345"

    def test_standalone_memory_storage(self, standalone_storage):
        standalone_storage.set_item("k", "v")

        assert standalone_storage.area.snapshot() == {"k": "v"}


class TestRedisStorage:
    """Tests for the Upstash Redis backend with a mocked client."""

    def test_keys_are_namespaced_by_origin(self):
        client = Mock()
        client.get.return_value = "[]"
        redis_storage = RedisStorage(client, origin="shop", ttl=0)

        assert redis_storage.get_item("guest") == "[]"
        redis_storage.set_item("guest", "[1]")
        redis_storage.remove_item("guest")

        client.get.assert_called_once_with("shop:guest")
        client.set.assert_called_once_with("shop:guest", "[1]", ex=None)
        client.delete.assert_called_once_with("shop:guest")

    def test_ttl_applies_to_cart_keys_only(self):
        client = Mock()
        redis_storage = RedisStorage(client, origin="shop", ttl=3600)

        redis_storage.set_item("identity:1", "[]")
        redis_storage.set_item(StorageKeys.TOKEN, "abc")

        assert client.set.call_args_list[0].kwargs == {"ex": 3600}
        assert client.set.call_args_list[1].kwargs == {"ex": None}

    def test_client_errors_become_storage_unavailable(self):
        client = Mock()
        client.get.side_effect = ConnectionError("down")
        client.set.side_effect = ConnectionError("down")
        redis_storage = RedisStorage(client, origin="shop")

        with pytest.raises(StorageUnavailableError):
            redis_storage.get_item("guest")
        with pytest.raises(StorageUnavailableError):
            redis_storage.set_item("guest", "[]")

    def test_cart_store_degrades_on_redis_outage(self, identity, sample_product):
        """Test the store runs in memory when Redis is unreachable."""
        from storefront.cart import CartStore

        client = Mock()
        client.get.side_effect = ConnectionError("down")
        client.set.side_effect = ConnectionError("down")

        store = CartStore(RedisStorage(client, origin="shop"), identity)
        store.add_to_cart(sample_product)

        assert store.get_cart_items_count() == 1


class TestGetStorage:
    def test_memory_fallback_without_redis_config(self, monkeypatch):
        monkeypatch.setattr(storage_module, "_storage", None)
        monkeypatch.setattr(storage_module.config, "UPSTASH_REDIS_REST_URL", "")

        first = storage_module.get_storage()

        assert isinstance(first, MemoryStorage)
        assert storage_module.get_storage() is first

    def test_redis_when_configured(self, monkeypatch):
        monkeypatch.setattr(storage_module, "_storage", None)
        monkeypatch.setattr(storage_module.config, "UPSTASH_REDIS_REST_URL", "https://redis.example.com")
        monkeypatch.setattr(storage_module.config, "UPSTASH_REDIS_REST_TOKEN", "token")
        redis_cls = Mock()
        monkeypatch.setattr(storage_module, "Redis", redis_cls)

        result = storage_module.get_storage()

        assert isinstance(result, RedisStorage)
        redis_cls.assert_called_once_with(url="https://redis.example.com", token="token")


class TestIdentityProviders:
    def test_stored_identity(self, storage):
        storage.set_item(StorageKeys.USER, json.dumps({"id": 3, "role": "CUSTOMER"}))

        assert StoredIdentityProvider(storage).current_identity() == "3"

    @pytest.mark.parametrize("raw", [None, "", "not json", "[1, 2]", json.dumps({"email": "x@y.z"}), json.dumps({"id": ""})])
    def test_unusable_user_record_means_guest(self, storage, raw):
        if raw is not None:
            storage.set_item(StorageKeys.USER, raw)

        assert StoredIdentityProvider(storage).current_identity() is None

    def test_backend_exception_means_guest(self):
        backend = Mock()
        backend.get_item.side_effect = PermissionError("denied")

        assert StoredIdentityProvider(backend).current_identity() is None

    def test_unreadable_storage_means_guest(self, area, storage):
        storage.set_item(StorageKeys.USER, json.dumps({"id": 3}))
        area.disable()

        assert StoredIdentityProvider(storage).current_identity() is None

    def test_static_identity_switch(self):
        provider = StaticIdentityProvider(1)
        assert provider.current_identity() == "1"

        provider.switch(None)
        assert provider.current_identity() is None


class TestEventBus:
    def test_emit_delivers_by_type(self):
        bus = EventBus()
        auth, changes = [], []
        bus.subscribe(AuthChanged, auth.append)
        bus.on_external_change(changes.append)

        bus.emit(AuthChanged())
        bus.emit(StorageChanged(key="guest"))

        assert auth == [AuthChanged()]
        assert changes == ["guest"]

    def test_unsubscribe(self):
        bus = EventBus()
        seen = []
        unsubscribe = bus.subscribe(AuthChanged, seen.append)

        unsubscribe()
        unsubscribe()
        bus.emit(AuthChanged())

        assert seen == []
        assert bus.subscriber_count(AuthChanged) == 0

    def test_failing_subscriber_does_not_stop_delivery(self):
        bus = EventBus()
        seen = []
        bus.subscribe(AuthChanged, Mock(side_effect=RuntimeError("boom")))
        bus.subscribe(AuthChanged, seen.append)

        bus.emit(AuthChanged())

        assert len(seen) == 1
