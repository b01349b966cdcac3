"""
Event bus for cross-component signals.

Two signals matter to the cart store:
- AuthChanged: fired by login/logout, no payload
- StorageChanged: fired when another context wrote to the shared storage area
"""
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Type

from storefront.logging import get_logger, sanitize_string_for_logging

logger = get_logger(__name__)


@dataclass(frozen=True)
class AuthChanged:
    """Login or logout happened."""


@dataclass(frozen=True)
class StorageChanged:
    """Another context wrote (or removed) ``key`` in the shared storage area."""
    key: str


Callback = Callable[[object], None]
Unsubscribe = Callable[[], None]


class EventBus:
    """Synchronous publish/subscribe keyed by event type."""

    def __init__(self):
        self._subscribers: Dict[Type, List[Callback]] = {}

    def subscribe(self, event_type: Type, callback: Callback) -> Unsubscribe:
        """Register ``callback`` for ``event_type``. Returns a function that removes it."""
        callbacks = self._subscribers.setdefault(event_type, [])
        callbacks.append(callback)

        def unsubscribe() -> None:
            if callback in callbacks:
                callbacks.remove(callback)

        return unsubscribe

    def on_external_change(self, callback: Callable[[str], None]) -> Unsubscribe:
        """Subscribe to storage changes made by other contexts; callback gets the key."""
        return self.subscribe(StorageChanged, lambda event: callback(event.key))

    def subscriber_count(self, event_type: Type) -> int:
        return len(self._subscribers.get(event_type, []))

    def emit(self, event: object) -> None:
        """Deliver ``event`` to its subscribers in subscription order."""
        # Copy: a callback may unsubscribe while we iterate
        for callback in list(self._subscribers.get(type(event), [])):
            try:
                callback(event)
            except Exception as e:
                logger.error(
                    f"Subscriber for {type(event).__name__} failed: "
                    f"{sanitize_string_for_logging(str(e))}",
                    exc_info=True,
                )


_event_bus: Optional[EventBus] = None


def get_event_bus() -> EventBus:
    """Get the process-wide EventBus (singleton)."""
    global _event_bus
    if _event_bus is None:
        _event_bus = EventBus()
    return _event_bus
