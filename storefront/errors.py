"""
Common Error Constants and Exceptions

Centralized error messages plus the exception types raised by the
storage, API and checkout layers.
"""
from typing import Optional

# Storage errors
ERROR_STORAGE_UNAVAILABLE = "Durable storage unavailable"
ERROR_STORAGE_QUOTA = "Durable storage quota exceeded"

# Cart errors
ERROR_CART_EMPTY = "Your cart is empty!"

# API errors
ERROR_API_UNREACHABLE = "Backend unreachable"
ERROR_LOGIN_FAILED = "Login failed. Please check your credentials."


class StorefrontError(Exception):
    """Base class for storefront client errors."""


class StorageUnavailableError(StorefrontError):
    """Durable storage is disabled, full, or its backend failed."""


class InvalidCartLineError(StorefrontError, ValueError):
    """A product descriptor or stored line cannot form a cart line."""


class CorruptSnapshotError(StorefrontError, ValueError):
    """A stored value is not valid serialized cart data."""


class EmptyCartError(StorefrontError):
    """Checkout attempted with no lines in the cart."""

    def __init__(self, message: str = ERROR_CART_EMPTY):
        super().__init__(message)


class StorefrontAPIError(StorefrontError):
    """Backend returned a non-2xx response or could not be reached."""

    def __init__(self, status_code: int, detail: Optional[str] = None):
        self.status_code = status_code
        self.detail = detail or ERROR_API_UNREACHABLE
        super().__init__(f"{status_code}: {self.detail}")
