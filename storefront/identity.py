"""Identity resolution for scoping cart storage."""
import json
from typing import Optional, Protocol

from storefront.logging import get_logger
from storefront.storage import DurableStorage, StorageKeys

logger = get_logger(__name__)


class IdentityProvider(Protocol):
    """Answers "who is logged in"; None means guest."""

    def current_identity(self) -> Optional[str]: ...


def cart_key_for(identity: Optional[str]) -> str:
    """Storage key of the cart owned by ``identity`` (``guest`` when None)."""
    return StorageKeys.cart_key(identity)


class StoredIdentityProvider:
    """
    Reads the identity record the auth flow writes under ``user``.

    The record is a JSON object with an ``id``. Anything else (missing,
    malformed, id-less, storage failure) resolves to guest. Read-only.
    """

    def __init__(self, storage: DurableStorage):
        self.storage = storage

    def current_identity(self) -> Optional[str]:
        try:
            raw = self.storage.get_item(StorageKeys.USER)
        except Exception as e:
            logger.warning(f"Identity record unreadable, treating session as guest: {e}")
            return None

        if not raw:
            return None

        try:
            user = json.loads(raw)
        except (json.JSONDecodeError, TypeError):
            logger.warning("Identity record is not JSON, treating session as guest")
            return None

        if not isinstance(user, dict):
            return None
        user_id = user.get("id")
        if user_id is None or user_id == "":
            return None
        return str(user_id)


class StaticIdentityProvider:
    """Fixed identity, switched explicitly (tests, server-side sessions)."""

    def __init__(self, identity: Optional[str] = None):
        self._identity = None if identity is None else str(identity)

    def current_identity(self) -> Optional[str]:
        return self._identity

    def switch(self, identity: Optional[str]) -> None:
        self._identity = None if identity is None else str(identity)
