"""
Durable Storage - key/value persistence for client state

Provides:
- SharedStorageArea / MemoryStorage: in-process storage shared by several
  contexts (tabs), with change notification to the other contexts
- RedisStorage: Upstash Redis backed storage for a deployed client
- get_storage(): singleton picked from the environment

Values are strings (JSON documents); the cart store owns serialization.
"""

from typing import Dict, List, Optional, Protocol

from upstash_redis import Redis

from storefront import config
from storefront.errors import (
    ERROR_STORAGE_QUOTA,
    ERROR_STORAGE_UNAVAILABLE,
    StorageUnavailableError,
)
from storefront.events import EventBus, StorageChanged, get_event_bus
from storefront.logging import get_logger, sanitize_string_for_logging

logger = get_logger(__name__)


class DurableStorage(Protocol):
    """Minimal key/value contract. Every method may raise StorageUnavailableError."""

    def get_item(self, key: str) -> Optional[str]: ...

    def set_item(self, key: str, value: str) -> None: ...

    def remove_item(self, key: str) -> None: ...


class StorageKeys:
    """Storage keys used by the client."""

    # Cart snapshots
    IDENTITY = "identity:"  # identity:{user_id}
    GUEST = "guest"
    LEGACY_CART = "cart"  # unscoped, read once for migration

    # Written by the auth flow
    USER = "user"
    TOKEN = "token"

    @staticmethod
    def cart_key(identity_id: Optional[str]) -> str:
        if identity_id is None or identity_id == "":
            return StorageKeys.GUEST
        return f"{StorageKeys.IDENTITY}{identity_id}"


class SharedStorageArea:
    """
    Origin-scoped storage shared by every context opened on it.

    A write made through one context is announced to the others with a
    StorageChanged event on their buses, never to the writer itself.
    """

    def __init__(self, quota: Optional[int] = None):
        self._data: Dict[str, str] = {}
        self._contexts: List["MemoryStorage"] = []
        self.quota = quota  # max total characters of keys + values
        self.enabled = True

    def open_context(self, events: Optional[EventBus] = None) -> "MemoryStorage":
        return MemoryStorage(area=self, events=events)

    def disable(self) -> None:
        """Make every access fail, like storage turned off by the user."""
        self.enabled = False

    def enable(self) -> None:
        self.enabled = True

    def snapshot(self) -> Dict[str, str]:
        return dict(self._data)

    def _attach(self, context: "MemoryStorage") -> None:
        self._contexts.append(context)

    def _check_enabled(self) -> None:
        if not self.enabled:
            raise StorageUnavailableError(ERROR_STORAGE_UNAVAILABLE)

    def _size_with(self, key: str, value: str) -> int:
        size = sum(len(k) + len(v) for k, v in self._data.items() if k != key)
        return size + len(key) + len(value)

    def _get(self, key: str) -> Optional[str]:
        self._check_enabled()
        return self._data.get(key)

    def _set(self, source: "MemoryStorage", key: str, value: str) -> None:
        self._check_enabled()
        if self.quota is not None and self._size_with(key, value) > self.quota:
            raise StorageUnavailableError(ERROR_STORAGE_QUOTA)
        self._data[key] = value
        self._broadcast(source, key)

    def _remove(self, source: "MemoryStorage", key: str) -> None:
        self._check_enabled()
        if self._data.pop(key, None) is not None:
            self._broadcast(source, key)

    def _broadcast(self, source: "MemoryStorage", key: str) -> None:
        for context in list(self._contexts):
            if context is not source:
                context.events.emit(StorageChanged(key=key))


class MemoryStorage:
    """One context's view of a SharedStorageArea (a standalone area by default)."""

    def __init__(self, area: Optional[SharedStorageArea] = None, events: Optional[EventBus] = None):
        self.area = area if area is not None else SharedStorageArea()
        self.events = events if events is not None else EventBus()
        self.area._attach(self)

    def get_item(self, key: str) -> Optional[str]:
        return self.area._get(key)

    def set_item(self, key: str, value: str) -> None:
        self.area._set(self, key, value)

    def remove_item(self, key: str) -> None:
        self.area._remove(self, key)


class RedisStorage:
    """
    Durable storage on Upstash Redis.

    Keys are namespaced by origin: ``{origin}:{key}``. Cart snapshots get
    ``ttl`` seconds of expiry when ttl > 0.
    """

    def __init__(self, client: Redis, origin: str = config.STOREFRONT_ORIGIN, ttl: int = config.CART_TTL_SECONDS):
        self.client = client
        self.origin = origin
        self.ttl = ttl

    def _full_key(self, key: str) -> str:
        return f"{self.origin}:{key}"

    def _expiry_for(self, key: str) -> Optional[int]:
        is_cart_key = key in (StorageKeys.GUEST, StorageKeys.LEGACY_CART) or key.startswith(StorageKeys.IDENTITY)
        if self.ttl > 0 and is_cart_key:
            return self.ttl
        return None

    def get_item(self, key: str) -> Optional[str]:
        try:
            return self.client.get(self._full_key(key))
        except Exception as e:
            logger.warning(f"Redis get failed for {sanitize_string_for_logging(key)}: {e}")
            raise StorageUnavailableError(ERROR_STORAGE_UNAVAILABLE) from e

    def set_item(self, key: str, value: str) -> None:
        try:
            self.client.set(self._full_key(key), value, ex=self._expiry_for(key))
        except Exception as e:
            logger.warning(f"Redis set failed for {sanitize_string_for_logging(key)}: {e}")
            raise StorageUnavailableError(ERROR_STORAGE_UNAVAILABLE) from e

    def remove_item(self, key: str) -> None:
        try:
            self.client.delete(self._full_key(key))
        except Exception as e:
            logger.warning(f"Redis delete failed for {sanitize_string_for_logging(key)}: {e}")
            raise StorageUnavailableError(ERROR_STORAGE_UNAVAILABLE) from e


_storage: Optional[DurableStorage] = None


def get_storage() -> DurableStorage:
    """
    Get the process-wide durable storage (singleton).

    Uses Upstash Redis when UPSTASH_REDIS_REST_URL and
    UPSTASH_REDIS_REST_TOKEN are set, otherwise in-process memory.
    """
    global _storage

    if _storage is None:
        if config.UPSTASH_REDIS_REST_URL and config.UPSTASH_REDIS_REST_TOKEN:
            client = Redis(url=config.UPSTASH_REDIS_REST_URL, token=config.UPSTASH_REDIS_REST_TOKEN)
            _storage = RedisStorage(client)
            logger.info("Using Upstash Redis for durable storage")
        else:
            _storage = MemoryStorage(events=get_event_bus())
            logger.warning("Redis not configured; cart state will not survive a restart")

    return _storage
