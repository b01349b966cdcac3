"""Checkout flow: submit the cart as an order, clear it on success."""
from decimal import Decimal
from typing import Any, Dict, Union

from storefront import config
from storefront.api import StorefrontAPI
from storefront.cart import CartStore
from storefront.errors import EmptyCartError
from storefront.logging import get_logger
from storefront.money import add, format_money, to_decimal, to_float

logger = get_logger(__name__)

SHIPPING_FEE = to_decimal(config.SHIPPING_FEE)

SHIPPING_FIELDS = ("name", "email", "address", "city", "zipCode")


def build_order(cart_store: CartStore, shipping_info: Dict[str, Any], shipping_fee: Decimal = SHIPPING_FEE) -> Dict[str, Any]:
    """Order payload: cart lines, total including shipping, shipping address."""
    total = add(cart_store.get_cart_total(), shipping_fee)
    return {
        "items": [line.to_dict() for line in cart_store.cart_items],
        "total": to_float(total),
        "shippingInfo": {field: shipping_info.get(field, "") for field in SHIPPING_FIELDS},
    }


async def place_order(
    cart_store: CartStore,
    api: StorefrontAPI,
    shipping_info: Dict[str, Any],
    shipping_fee: Union[Decimal, int, str] = SHIPPING_FEE,
) -> Any:
    """
    Create the order and clear the cart once the backend accepts it.

    Raises:
        EmptyCartError: cart has no lines (no request is made)
        StorefrontAPIError: backend rejected the order; cart is left as is
    """
    if not cart_store.cart_items:
        raise EmptyCartError()

    order = build_order(cart_store, shipping_info, to_decimal(shipping_fee))
    result = await api.create_order(order)

    cart_store.clear_cart()
    logger.info(f"Order placed for {format_money(order['total'])}")
    return result
