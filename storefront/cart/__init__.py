"""Cart package: models, storage keys, and the cart store."""
from .models import Cart, CartLine, Product
from .service import CartStore, get_cart_store

__all__ = [
    "Cart",
    "CartLine",
    "Product",
    "CartStore",
    "get_cart_store",
]
