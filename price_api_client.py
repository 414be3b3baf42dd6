"""
HTTP client for the Champion Cart pricing backend.

Endpoints (relative to the configured base URL):
- POST cheapest-cart: Cross-store total for a cart in a city
- GET  prices/by-item/{city}/{item_name}: Product search, grouped per store
- GET  prices/identical-products/{city}/{item_name}: Same product across chains
- GET  cities-list (or cities), cities-list-with-stores: City names
- saved-carts/*: Save, list, detail, compare and delete named carts

Failure mapping:
- Timeout / connection refused / malformed payload → PriceServiceUnavailableError
- HTTP error status, or a body with "success": false → PriceServiceRejectedError

The client never retries; callers decide.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import pydantic
import requests

from config import Settings, get_settings
from domain import CartSnapshot, PricedProduct, SavedCart, SavedCartSummary
from errors import CartPricingError, PriceServiceRejectedError, PriceServiceUnavailableError
from schemas import (
    CheapestCartRequest,
    ComparisonPayload,
    SaveCartRequest,
    SaveCartResponseWire,
    parse_cheapest_cart,
    parse_city_list,
    parse_product_list,
    parse_saved_cart_comparison,
    parse_saved_cart_detail,
    parse_saved_cart_list,
)

logger = logging.getLogger(__name__)


class PriceApiClient:
    """Client for the pricing, search and saved-cart endpoints"""

    CHEAPEST_CART = "cheapest-cart"
    SEARCH_PRICES = "prices/by-item/{city}/{item_name}"
    IDENTICAL_PRODUCTS = "prices/identical-products/{city}/{item_name}"
    CITIES = "cities-list"
    CITIES_FALLBACK = "cities"
    CITIES_WITH_STORES = "cities-list-with-stores"
    SAVE_CART = "saved-carts/save"
    SAVED_CARTS = "saved-carts/list"
    SAVED_CART = "saved-carts/{cart_id}"
    COMPARE_SAVED_CART = "saved-carts/{cart_id}/compare"

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        auth_token: Optional[str] = None,
        session: Optional[requests.Session] = None,
        timezone: Optional[str] = None,
        settings: Optional[Settings] = None,
    ):
        """
        Initialize the pricing client.

        Args:
            base_url: Backend root, e.g. http://localhost:8000/api/
            timeout: Seconds before a request counts as unavailable
            auth_token: Bearer token for authenticated endpoints
            session: requests.Session to reuse (tests inject a fake one)
            timezone: Zone of naive backend timestamps
            settings: Fallback for every argument left as None
        """
        settings = settings or get_settings()
        base_url = base_url or settings.api_url
        self.base_url = base_url if base_url.endswith("/") else base_url + "/"
        self.timeout = timeout or settings.timeout
        self.timezone = timezone or settings.timezone
        self.session = session or requests.Session()
        self.session.headers.update({"Accept": "application/json"})

        token = auth_token or settings.auth_token
        if token:
            self.session.headers["Authorization"] = f"Bearer {token}"

        logger.info(f"PriceApiClient initialized for {self.base_url}")

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def _url(self, path: str, **params: Any) -> str:
        encoded = {key: quote(str(value), safe="") for key, value in params.items()}
        return self.base_url + path.format(**encoded)

    def _request(
        self,
        method: str,
        path: str,
        path_params: Optional[Dict[str, Any]] = None,
        **kwargs: Any,
    ) -> Any:
        """
        Send one request and decode its JSON body.

        Returns:
            Decoded JSON, or None for an empty body

        Raises:
            PriceServiceUnavailableError: On timeout, connection or decode failure
            PriceServiceRejectedError: On an error status or "success": false
        """
        url = self._url(path, **(path_params or {}))
        logger.debug(f"{method} {url}")

        try:
            response = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.exceptions.Timeout as e:
            logger.warning(f"Timeout after {self.timeout}s: {method} {url}")
            raise PriceServiceUnavailableError(
                f"Price service timed out after {self.timeout}s", cause=e
            )
        except requests.exceptions.RequestException as e:
            logger.warning(f"Request failed: {method} {url}: {e}")
            raise PriceServiceUnavailableError(f"Price service unreachable: {e}", cause=e)

        if response.status_code >= 400:
            message = self._error_message(response)
            logger.error(f"HTTP {response.status_code} from {path}: {message}")
            raise PriceServiceRejectedError(response.status_code, message)

        if not response.content:
            return None

        try:
            data = response.json()
        except ValueError as e:
            logger.error(f"Invalid JSON from {path}: {e}")
            raise PriceServiceUnavailableError(f"Malformed response from {path}", cause=e)

        if isinstance(data, dict) and data.get("success") is False:
            message = data.get("message") or data.get("detail") or data.get("error")
            logger.error(f"Request to {path} unsuccessful: {message}")
            raise PriceServiceRejectedError(response.status_code, message)

        return data

    @staticmethod
    def _error_message(response: requests.Response) -> Optional[str]:
        """Server-provided message: "detail", "message" or "error" field, else raw text"""
        try:
            body = response.json()
        except ValueError:
            text = (response.text or "").strip()
            return text[:200] or None

        if isinstance(body, dict):
            for key in ("detail", "message", "error"):
                value = body.get(key)
                if value:
                    return value if isinstance(value, str) else str(value)
        return None

    def _parse(self, path: str, parser, *args: Any) -> Any:
        try:
            return parser(*args)
        except (pydantic.ValidationError, ValueError, TypeError, KeyError) as e:
            logger.error(f"Unexpected payload shape from {path}: {e}")
            raise PriceServiceUnavailableError(f"Malformed response from {path}", cause=e)

    # ------------------------------------------------------------------
    # Pricing
    # ------------------------------------------------------------------

    def calculate_cheapest_cart(self, snapshot: CartSnapshot, city: str) -> ComparisonPayload:
        """Submit a cart for cross-store comparison and normalize the answer"""
        request = CheapestCartRequest.from_snapshot(snapshot, city)
        logger.info(f"Comparing {len(snapshot)} cart lines in {city}")

        data = self._request("POST", self.CHEAPEST_CART, json=request.to_payload())
        if data is None:
            raise PriceServiceUnavailableError(f"Empty response from {self.CHEAPEST_CART}")

        payload = self._parse(self.CHEAPEST_CART, parse_cheapest_cart, data, snapshot)
        logger.info(f"✓ Received {len(payload.quotes)} store quotes for {city}")
        return payload

    def search_products(
        self,
        city: str,
        item_name: str,
        group_by_code: bool = True,
        limit: Optional[int] = None,
    ) -> List[PricedProduct]:
        """Search products by name (or barcode) in a city"""
        params: Dict[str, Any] = {"group_by_code": str(group_by_code).lower()}
        if limit is not None:
            params["limit"] = limit

        data = self._request(
            "GET",
            self.SEARCH_PRICES,
            path_params={"city": city, "item_name": item_name},
            params=params,
        )
        products = self._parse(self.SEARCH_PRICES, parse_product_list, data or [], self.timezone)
        logger.info(f"Search '{item_name}' in {city}: {len(products)} products")
        return products

    def get_identical_products(
        self,
        city: str,
        item_name: str,
        limit: Optional[int] = None,
    ) -> List[PricedProduct]:
        """Products sold under the same barcode by more than one chain"""
        params = {"limit": limit} if limit is not None else None
        data = self._request(
            "GET",
            self.IDENTICAL_PRODUCTS,
            path_params={"city": city, "item_name": item_name},
            params=params,
        )
        return self._parse(self.IDENTICAL_PRODUCTS, parse_product_list, data or [], self.timezone)

    def get_cities(self) -> List[str]:
        """All known cities; falls back to the older /cities route when missing"""
        try:
            data = self._request("GET", self.CITIES)
            path = self.CITIES
        except PriceServiceRejectedError as e:
            if e.status != 404:
                raise
            logger.debug(f"{self.CITIES} not found, trying {self.CITIES_FALLBACK}")
            data = self._request("GET", self.CITIES_FALLBACK)
            path = self.CITIES_FALLBACK
        return self._parse(path, parse_city_list, data or [])

    def get_cities_with_stores(self) -> List[str]:
        data = self._request("GET", self.CITIES_WITH_STORES)
        return self._parse(self.CITIES_WITH_STORES, parse_city_list, data or [])

    # ------------------------------------------------------------------
    # Saved carts
    # ------------------------------------------------------------------

    def save_cart(self, request: SaveCartRequest) -> str:
        """Persist a named cart and return the id the backend assigned"""
        data = self._request("POST", self.SAVE_CART, json=request.to_payload())
        if data is None:
            raise PriceServiceUnavailableError(f"Empty response from {self.SAVE_CART}")
        saved = self._parse(self.SAVE_CART, SaveCartResponseWire.model_validate, data)
        return saved.cart_id

    def list_saved_carts(self) -> List[SavedCartSummary]:
        data = self._request("GET", self.SAVED_CARTS)
        return self._parse(self.SAVED_CARTS, parse_saved_cart_list, data or [], self.timezone)

    def get_saved_cart(self, cart_id: str) -> SavedCart:
        data = self._request("GET", self.SAVED_CART, path_params={"cart_id": cart_id})
        if data is None:
            raise PriceServiceUnavailableError(f"Empty response for saved cart {cart_id}")
        return self._parse(self.SAVED_CART, parse_saved_cart_detail, data, self.timezone)

    def compare_saved_cart(self, cart_id: str):
        """
        Server-side comparison of a saved cart.

        Returns:
            (city, CartSnapshot, List[StoreQuote]) for local ranking
        """
        data = self._request("GET", self.COMPARE_SAVED_CART, path_params={"cart_id": cart_id})
        if data is None:
            raise PriceServiceUnavailableError(f"Empty comparison for saved cart {cart_id}")
        return self._parse(self.COMPARE_SAVED_CART, parse_saved_cart_comparison, data)

    def delete_saved_cart(self, cart_id: str) -> None:
        self._request("DELETE", self.SAVED_CART, path_params={"cart_id": cart_id})

    def close(self) -> None:
        self.session.close()


async def call_async(func, *args: Any) -> Any:
    """
    Run a blocking client call in a worker thread.

    Anything that is not already a CartPricingError is surfaced as
    PriceServiceUnavailableError so callers always get a typed failure.
    Cancelling the awaiting task abandons the result; no shared state is touched.
    """
    try:
        return await asyncio.to_thread(func, *args)
    except CartPricingError:
        raise
    except Exception as e:
        name = getattr(func, "__name__", repr(func))
        logger.error(f"Price service call {name} failed: {e}")
        raise PriceServiceUnavailableError(f"Price service call failed: {e}", cause=e)
