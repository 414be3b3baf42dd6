"""
Product search and city lookup

- search(): Products matching a name or barcode in a city, with each
  store price classified BEST / MID / HIGH
- identical(): Same barcode sold by several chains
- cities(): City names, falling back to a built-in list of major cities
  when the backend cannot be reached
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional

from cart_store import CartStore
from domain import PricedProduct, PriceLevel
from errors import CartPricingError, ValidationError
from price_api_client import call_async

logger = logging.getLogger(__name__)

DEFAULT_CITIES = [
    "תל אביב",
    "ירושלים",
    "חיפה",
    "ראשון לציון",
    "פתח תקווה",
    "אשדוד",
    "נתניה",
    "באר שבע",
    "בני ברק",
    "רמת גן",
]


@dataclass(frozen=True)
class SearchHit:
    """A search result with its per-store price levels"""
    product: PricedProduct
    levels: Dict[str, PriceLevel]

    @property
    def identity(self) -> str:
        return self.product.identity


class ProductSearchService:
    """Search and city lookups over the pricing backend"""

    def __init__(self, client):
        self.client = client

    @staticmethod
    def _validate(city: str, query: str) -> None:
        if not city or not city.strip():
            raise ValidationError("A city is required to search products")
        if not query or not query.strip():
            raise ValidationError("Search text must not be blank")

    async def search(self, city: str, query: str, limit: Optional[int] = None) -> List[SearchHit]:
        self._validate(city, query)
        products = await call_async(
            self.client.search_products, city.strip(), query.strip(), True, limit
        )
        return [SearchHit(product=p, levels=p.price_levels()) for p in products]

    async def identical(self, city: str, query: str, limit: Optional[int] = None) -> List[SearchHit]:
        self._validate(city, query)
        products = await call_async(
            self.client.get_identical_products, city.strip(), query.strip(), limit
        )
        return [SearchHit(product=p, levels=p.price_levels()) for p in products]

    async def cities(self, with_stores: bool = False) -> List[str]:
        fetch = self.client.get_cities_with_stores if with_stores else self.client.get_cities
        try:
            cities = await call_async(fetch)
        except CartPricingError as e:
            logger.warning(f"City list unavailable, using defaults: {e}")
            return list(DEFAULT_CITIES)

        if not cities:
            logger.warning("Backend returned no cities, using defaults")
            return list(DEFAULT_CITIES)
        return cities


def add_to_cart(store: CartStore, product: PricedProduct, quantity: int = 1) -> None:
    """Put a search result into the cart under its identity"""
    store.add_item(product.identity, product.display_name, quantity)
