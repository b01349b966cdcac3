"""Cart store: per-identity cart state persisted to durable storage."""
import json
from dataclasses import replace
from decimal import Decimal
from typing import Any, Callable, List, Mapping, Optional, Tuple, Union

from storefront.errors import CorruptSnapshotError, InvalidCartLineError
from storefront.events import AuthChanged, EventBus, StorageChanged, get_event_bus
from storefront.identity import IdentityProvider, StoredIdentityProvider, cart_key_for
from storefront.logging import get_logger, sanitize_id_for_logging, sanitize_string_for_logging
from storefront.storage import DurableStorage, StorageKeys, get_storage
from .models import Cart, CartLine, Product, ProductId

logger = get_logger(__name__)

CartListener = Callable[[Tuple[CartLine, ...]], None]


def _coerce_quantity(value: Any) -> Optional[int]:
    """Integer quantity from view input, or None when it is not a whole number.

    Anything at or below zero maps to 0 (removal) before the whole-number check.
    """
    if isinstance(value, bool):
        return None
    try:
        number = Decimal(value.strip()) if isinstance(value, str) else value
        if number <= 0:
            return 0
        quantity = int(number)
        if quantity != number:
            return None
    except (ArithmeticError, ValueError, TypeError):
        return None
    return quantity


class CartStore:
    """
    Single source of truth for what is in the cart.

    The cart lives under ``identity:<id>`` for a logged-in user and ``guest``
    otherwise. Every mutation overwrites the whole snapshot in storage.
    AuthChanged and StorageChanged (for the current or legacy key) reload it.

    Storage failures never reach the caller: unreadable or corrupt
    snapshots load as an empty cart, failed writes leave the cart in memory.
    """

    def __init__(
        self,
        storage: DurableStorage,
        identity_provider: IdentityProvider,
        events: Optional[EventBus] = None,
    ):
        self.storage = storage
        self.identity_provider = identity_provider
        self.events = events if events is not None else EventBus()
        self._cart = Cart(key=StorageKeys.GUEST)
        self._listeners: List[CartListener] = []

        self.reload()

        self._unsubscribers = [
            self.events.subscribe(AuthChanged, self._on_auth_changed),
            self.events.subscribe(StorageChanged, self._on_storage_changed),
        ]

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def close(self) -> None:
        """Release the AuthChanged/StorageChanged subscriptions."""
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []

    def __enter__(self) -> "CartStore":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def subscribe(self, listener: CartListener) -> Callable[[], None]:
        """Call ``listener`` with the new lines after every mutation or reload."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def reload(self) -> None:
        """Re-resolve the identity key and load its snapshot."""
        key = cart_key_for(self.identity_provider.current_identity())
        self._cart = self._load(key)
        logger.debug(
            f"Cart loaded for {sanitize_string_for_logging(key)}: {len(self._cart.lines)} lines"
        )
        self._notify()

    def _on_auth_changed(self, _event: AuthChanged) -> None:
        self.reload()

    def _on_storage_changed(self, event: StorageChanged) -> None:
        if event.key in (self._cart.key, StorageKeys.LEGACY_CART):
            self.reload()

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _read(self, key: str) -> Optional[str]:
        try:
            return self.storage.get_item(key)
        except Exception as e:
            logger.warning(f"Failed to read {sanitize_string_for_logging(key)} from storage: {e}")
            return None

    def _parse(self, key: str, raw: str) -> Cart:
        try:
            return Cart.from_list(key, json.loads(raw))
        except (json.JSONDecodeError, TypeError, CorruptSnapshotError) as e:
            logger.warning(f"Corrupted cart data under {sanitize_string_for_logging(key)}: {e}")
            return Cart(key=key)

    def _load(self, key: str) -> Cart:
        raw = self._read(key)
        if raw:
            return self._parse(key, raw)

        legacy = self._read(StorageKeys.LEGACY_CART)
        if legacy:
            return self._migrate_legacy(key, legacy)

        return Cart(key=key)

    def _migrate_legacy(self, key: str, legacy: str) -> Cart:
        """Move the unscoped legacy snapshot under ``key``. Runs only while ``key`` is absent."""
        try:
            cart = Cart.from_list(key, json.loads(legacy))
        except (json.JSONDecodeError, TypeError, CorruptSnapshotError) as e:
            logger.warning(f"Discarding corrupt legacy cart: {e}")
            self._remove(StorageKeys.LEGACY_CART)
            return Cart(key=key)

        if self._save(cart):
            self._remove(StorageKeys.LEGACY_CART)
        logger.info(
            f"Migrated legacy cart ({len(cart.lines)} lines) to {sanitize_string_for_logging(key)}"
        )
        return cart

    def _remove(self, key: str) -> None:
        try:
            self.storage.remove_item(key)
        except Exception as e:
            logger.warning(f"Failed to remove {sanitize_string_for_logging(key)} from storage: {e}")

    def _save(self, cart: Cart) -> bool:
        """Overwrite the snapshot under the cart's key. False when storage refused it."""
        try:
            self.storage.set_item(cart.key, json.dumps(cart.to_list()))
            return True
        except Exception as e:
            logger.error(
                f"Failed to save cart to {sanitize_string_for_logging(cart.key)}, "
                f"keeping it in memory only: {e}"
            )
            return False

    def _notify(self) -> None:
        items = self.cart_items
        for listener in list(self._listeners):
            try:
                listener(items)
            except Exception:
                logger.exception("Cart listener failed")

    def _commit(self) -> Tuple[CartLine, ...]:
        self._save(self._cart)
        self._notify()
        return self.cart_items

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def key(self) -> str:
        """Storage key of the cart currently held."""
        return self._cart.key

    @property
    def cart_items(self) -> Tuple[CartLine, ...]:
        """Current lines in first-add order (copies; mutate through the store)."""
        return tuple(replace(line, extra=dict(line.extra)) for line in self._cart.lines)

    def get_cart_total(self) -> Decimal:
        """Sum of price * quantity over all lines."""
        return self._cart.total

    def get_cart_items_count(self) -> int:
        """Sum of quantities over all lines."""
        return self._cart.items_count

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def add_to_cart(self, product: Union[Product, Mapping[str, Any]]) -> Tuple[CartLine, ...]:
        """Increment the product's line by one, or append it with quantity 1."""
        try:
            line = CartLine.from_product(product)
        except InvalidCartLineError as e:
            logger.warning(f"Rejected product descriptor: {e}")
            return self.cart_items

        existing = self._cart.find(line.product_id)
        if existing is not None:
            existing.quantity += 1
        else:
            self._cart.lines.append(line)

        logger.debug(f"Added product {sanitize_id_for_logging(line.product_id)} to cart")
        return self._commit()

    def remove_from_cart(self, product_id: ProductId) -> Tuple[CartLine, ...]:
        """Drop the product's line entirely; no-op when absent."""
        existing = self._cart.find(product_id)
        if existing is not None:
            self._cart.lines.remove(existing)
        return self._commit()

    def update_quantity(self, product_id: ProductId, quantity: Any) -> Tuple[CartLine, ...]:
        """Set the line's quantity; quantity <= 0 removes it. No-op when absent."""
        new_quantity = _coerce_quantity(quantity)
        if new_quantity is None:
            logger.warning(f"Ignoring non-integer quantity for {sanitize_id_for_logging(product_id)}")
            return self.cart_items

        if new_quantity <= 0:
            return self.remove_from_cart(product_id)

        existing = self._cart.find(product_id)
        if existing is not None:
            existing.quantity = new_quantity
        return self._commit()

    def clear_cart(self) -> Tuple[CartLine, ...]:
        """Empty the cart (checkout completion or explicit request)."""
        self._cart.lines = []
        return self._commit()


# Singleton instance
_cart_store: Optional[CartStore] = None


def get_cart_store() -> CartStore:
    """Get CartStore singleton bound to the process storage and event bus."""
    global _cart_store
    if _cart_store is None:
        storage = get_storage()
        _cart_store = CartStore(storage, StoredIdentityProvider(storage), events=get_event_bus())
    return _cart_store
