"""Login/logout flow: owns the ``token`` and ``user`` records and fires AuthChanged."""
import json
from typing import Any, Dict, Optional

from storefront.api import StorefrontAPI
from storefront.errors import ERROR_LOGIN_FAILED, StorefrontAPIError
from storefront.events import AuthChanged, EventBus
from storefront.logging import get_logger, sanitize_id_for_logging
from storefront.storage import DurableStorage, StorageKeys

logger = get_logger(__name__)


class AuthFlow:
    """Writes the identity record the cart store keys on."""

    def __init__(self, api: StorefrontAPI, storage: DurableStorage, events: EventBus):
        self.api = api
        self.storage = storage
        self.events = events

    def token(self) -> Optional[str]:
        """Stored bearer token, usable as the API client's token source."""
        try:
            return self.storage.get_item(StorageKeys.TOKEN)
        except Exception as e:
            logger.warning(f"Failed to read token: {e}")
            return None

    def current_user(self) -> Optional[Dict[str, Any]]:
        try:
            raw = self.storage.get_item(StorageKeys.USER)
            user = json.loads(raw) if raw else None
        except Exception as e:
            logger.warning(f"Failed to read user record: {e}")
            return None
        return user if isinstance(user, dict) else None

    async def login(self, email: str, password: str) -> Dict[str, Any]:
        """Authenticate, store token and user record, then fire AuthChanged."""
        data = await self.api.login(email, password)
        if not isinstance(data, dict) or not data.get("token") or not isinstance(data.get("user"), dict):
            raise StorefrontAPIError(502, ERROR_LOGIN_FAILED)

        user = data["user"]
        self.storage.set_item(StorageKeys.TOKEN, data["token"])
        self.storage.set_item(StorageKeys.USER, json.dumps(user))
        logger.info(f"User {sanitize_id_for_logging(user.get('id'))} logged in")

        self.events.emit(AuthChanged())
        return user

    def logout(self) -> None:
        """Forget token and user record, then fire AuthChanged."""
        for key in (StorageKeys.USER, StorageKeys.TOKEN):
            try:
                self.storage.remove_item(key)
            except Exception as e:
                logger.warning(f"Failed to remove {key}: {e}")
        self.events.emit(AuthChanged())
