"""Shared fixtures: a recording fake backend and an in-memory database"""

import pytest

from config import Settings
from database import DatabaseManager
from domain import CartLine, CartSnapshot, StoreQuote
from schemas import ComparisonPayload


class FakePriceClient:
    """Stands in for PriceApiClient and records every call"""

    def __init__(self, quotes=None, city=None):
        self.calls = []
        self.quotes = quotes or []
        self.city = city
        self.saved = {}
        self.summaries = []
        self.comparison = None
        self.cities = []
        self.products = []
        self.next_id = 1
        self.error = None

    def _record(self, name, *args):
        self.calls.append((name, args))
        if self.error is not None:
            raise self.error

    def calculate_cheapest_cart(self, snapshot, city):
        self._record("calculate_cheapest_cart", snapshot, city)
        return ComparisonPayload(city=self.city or city, quotes=list(self.quotes))

    def search_products(self, city, item_name, group_by_code=True, limit=None):
        self._record("search_products", city, item_name, group_by_code, limit)
        return list(self.products)

    def get_identical_products(self, city, item_name, limit=None):
        self._record("get_identical_products", city, item_name, limit)
        return list(self.products)

    def get_cities(self):
        self._record("get_cities")
        return list(self.cities)

    def get_cities_with_stores(self):
        self._record("get_cities_with_stores")
        return list(self.cities)

    def save_cart(self, request):
        self._record("save_cart", request)
        cart_id = request.cart_id or str(self.next_id)
        self.next_id += 1
        self.saved[cart_id] = request
        return cart_id

    def list_saved_carts(self):
        self._record("list_saved_carts")
        return list(self.summaries)

    def get_saved_cart(self, cart_id):
        self._record("get_saved_cart", cart_id)
        return self.saved[cart_id]

    def compare_saved_cart(self, cart_id):
        self._record("compare_saved_cart", cart_id)
        return self.comparison

    def delete_saved_cart(self, cart_id):
        self._record("delete_saved_cart", cart_id)
        self.saved.pop(cart_id, None)


@pytest.fixture
def settings():
    return Settings(api_url="http://pricing.test/api/", timeout=5.0, db_url="sqlite:///:memory:")


@pytest.fixture
def three_item_cart():
    return CartSnapshot((
        CartLine("7290000000011", "Milk 3%", 2),
        CartLine("7290000000028", "Bread", 1),
        CartLine("eggs l", "Eggs L", 1),
    ))


@pytest.fixture
def quotes():
    """The 100 / 80 / 120 comparison of a three-item cart"""
    return [
        StoreQuote(chain="Shufersal", store_id="1", total_price=100.0, missing_item_count=0),
        StoreQuote(
            chain="Rami Levy", store_id="7", total_price=80.0, missing_item_count=0,
            item_prices={"7290000000011": 5.9, "7290000000028": 8.5, "eggs l": 12.9},
        ),
        StoreQuote(chain="Victory", store_id="3", total_price=120.0, missing_item_count=3),
    ]


@pytest.fixture
def fake_client(quotes):
    return FakePriceClient(quotes=quotes)


@pytest.fixture
def db_manager():
    manager = DatabaseManager("sqlite:///:memory:")
    manager.init_db()
    yield manager
    manager.close()
