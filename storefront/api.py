"""
Storefront backend client.

Thin async wrapper over the REST endpoints the cart flows use:
auth, product catalog and orders.
"""
from typing import Any, Callable, Dict, List, Optional

import httpx

from storefront import config
from storefront.errors import ERROR_API_UNREACHABLE, StorefrontAPIError
from storefront.logging import get_logger, sanitize_id_for_logging

logger = get_logger(__name__)

TokenSource = Callable[[], Optional[str]]


def _parse_error_response(response: httpx.Response) -> str:
    """Best-effort error detail from a backend error body."""
    try:
        data = response.json() if response.text else {}
    except ValueError:
        return response.text[:200]
    if isinstance(data, dict):
        return str(data.get("message") or data.get("error") or data.get("detail") or "")[:200]
    return response.text[:200]


class StorefrontAPI:
    """Async client for the storefront REST backend."""

    def __init__(
        self,
        base_url: str = config.STOREFRONT_API_URL,
        token_source: Optional[TokenSource] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = config.API_TIMEOUT,
    ):
        self.base_url = base_url.rstrip("/")
        self.token_source = token_source
        self.transport = transport
        self.timeout = timeout

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        token = self.token_source() if self.token_source else None
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    async def _request(
        self,
        method: str,
        path: str,
        json: Optional[Any] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> Any:
        url = f"{self.base_url}{path}"
        try:
            async with httpx.AsyncClient(transport=self.transport, timeout=self.timeout) as client:
                response = await client.request(method, url, json=json, params=params, headers=self._headers())
        except httpx.TimeoutException as e:
            logger.warning(f"Timeout calling {method} {path}")
            raise StorefrontAPIError(0, "Timeout") from e
        except httpx.HTTPError as e:
            logger.warning(f"Connection error calling {method} {path}: {e}")
            raise StorefrontAPIError(0, ERROR_API_UNREACHABLE) from e

        if not response.is_success:
            detail = _parse_error_response(response)
            logger.warning(f"Backend error for {method} {path}: status={response.status_code}, detail={detail}")
            raise StorefrontAPIError(response.status_code, detail or None)

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            return response.text

    # Auth

    async def login(self, email: str, password: str) -> Dict[str, Any]:
        """POST /auth/login. Returns ``{token, user}``."""
        return await self._request("POST", "/auth/login", json={"email": email, "password": password})

    async def register(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return await self._request("POST", "/auth/register", json=payload)

    # Products

    async def list_products(self, **params: Any) -> List[Dict[str, Any]]:
        """GET /products with optional search, category, sort, minPrice, maxPrice, page, size."""
        query = {k: v for k, v in params.items() if v is not None}
        return await self._request("GET", "/products", params=query or None)

    async def get_product(self, product_id: Any) -> Dict[str, Any]:
        return await self._request("GET", f"/products/{product_id}")

    # Orders

    async def create_order(self, order: Dict[str, Any]) -> Dict[str, Any]:
        return await self._request("POST", "/orders", json=order)

    async def orders_for_user(self, user_id: Any) -> List[Dict[str, Any]]:
        logger.debug(f"Fetching orders for user {sanitize_id_for_logging(user_id)}")
        return await self._request("GET", f"/orders/user/{user_id}")
