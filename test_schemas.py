"""Normalization of every accepted backend response shape"""

from datetime import datetime

import pydantic
import pytest
import pytz

from domain import CartLine, CartSnapshot
from schemas import (
    CheapestCartRequest,
    SaveCartRequest,
    parse_cheapest_cart,
    parse_city_list,
    parse_product_list,
    parse_saved_cart_comparison,
    parse_saved_cart_detail,
    parse_saved_cart_list,
    parse_timestamp,
)

CART = CartSnapshot((
    CartLine("7290000000011", "Milk 3%", 2),
    CartLine("bread", "Bread", 1),
))


# ============================================================================
# REQUESTS
# ============================================================================

def test_cheapest_cart_request_payload():
    payload = CheapestCartRequest.from_snapshot(CART, "Haifa").to_payload()

    assert payload == {
        "city": "Haifa",
        "items": [
            {"item_name": "Milk 3%", "quantity": 2, "barcode": "7290000000011"},
            {"item_name": "Bread", "quantity": 1},
        ],
    }


def test_save_cart_request_payload():
    payload = SaveCartRequest.from_snapshot("Weekly", CART, "Haifa").to_payload()

    assert payload["cart_name"] == "Weekly"
    assert "cart_id" not in payload
    assert payload["items"][0] == {"barcode": "7290000000011", "quantity": 2, "name": "Milk 3%"}


# ============================================================================
# CHEAPEST CART SHAPES
# ============================================================================

def test_list_of_stores_shape():
    payload = {
        "city": "Haifa",
        "chain": "Rami Levy",
        "store_id": "7",
        "total_price": 18.4,
        "item_prices": {"Milk 3%": 5.9, "Bread": 6.6},
        "all_stores": [
            {"chain": "Shufersal", "store_id": 1, "total_price": 21.0},
            {"chain": "Rami Levy", "store_id": "7", "total_price": 18.4},
        ],
    }
    parsed = parse_cheapest_cart(payload, CART)

    assert parsed.city == "Haifa"
    assert [(q.chain, q.store_id) for q in parsed.quotes] == [("Shufersal", "1"), ("Rami Levy", "7")]
    rami = parsed.quotes[1]
    assert rami.item_prices == {"7290000000011": 5.9, "bread": 6.6}


def test_flat_single_store_shape():
    payload = {
        "chain": "Victory",
        "store_id": "12",
        "total_price": 30.0,
        "missing_items": ["Bread"],
        "item_prices": [{"item_name": "Milk 3%", "price": 7.5}],
    }
    parsed = parse_cheapest_cart(payload, CART)

    assert len(parsed.quotes) == 1
    quote = parsed.quotes[0]
    assert quote.chain == "Victory"
    assert quote.missing_item_count == 1
    assert quote.item_prices == {"7290000000011": 7.5}


def test_compare_shape_with_branch_details():
    payload = {
        "cheapest_store": {
            "chain_name": "Yochananof",
            "branch_id": "44",
            "branch_name": "Haifa Port",
            "branch_address": "Derech HaAtzmaut 1",
            "total": 17.0,
        },
        "all_stores": [
            {"chain_name": "Yochananof", "branch_id": "44", "total": 17.0, "missing_items": 0},
            {
                "chain_name": "Shufersal",
                "branch_id": "2",
                "total": 19.0,
                "items": [
                    {"item_code": "7290000000011", "price": 6.0},
                    {"item_name": "Bread", "available": False},
                ],
            },
        ],
    }
    parsed = parse_cheapest_cart(payload, CART)

    yochananof, shufersal = parsed.quotes
    assert yochananof.store_name == "Haifa Port"
    assert yochananof.address == "Derech HaAtzmaut 1"
    assert shufersal.missing_item_count == 1
    assert shufersal.item_prices == {"7290000000011": 6.0}


def test_legacy_envelope_shape():
    payload = {
        "success": True,
        "city": "Haifa",
        "data": {
            "cheapest_store": "Rami Levy",
            "store_totals": {"Rami Levy": 15.0, "Shufersal": 18.0},
        },
    }
    parsed = parse_cheapest_cart(payload, CART)

    assert parsed.city == "Haifa"
    assert {q.chain: q.total_price for q in parsed.quotes} == {"Rami Levy": 15.0, "Shufersal": 18.0}


def test_negative_total_rejected():
    payload = {"all_stores": [{"chain": "A", "store_id": "1", "total_price": -1}]}
    with pytest.raises(pydantic.ValidationError):
        parse_cheapest_cart(payload, CART)


def test_saved_cart_comparison():
    payload = {
        "cart_info": {"cart_id": 9, "cart_name": "Weekly", "city": "Haifa"},
        "items": [
            {"barcode": "7290000000011", "name": "Milk 3%", "quantity": 2,
             "prices": {"Shufersal": 6.0, "Rami Levy": 5.0}},
            {"barcode": "7290000000028", "name": "Bread", "quantity": 1,
             "prices": {"Shufersal": 7.0, "Rami Levy": None}},
        ],
        "comparison": {
            "cheapest_store": {"chain": "Shufersal", "store_id": "3", "store_name": "Center",
                               "total_price": 19.0},
        },
    }
    city, snapshot, quotes = parse_saved_cart_comparison(payload)

    assert city == "Haifa"
    assert snapshot.item_count == 3
    by_chain = {q.chain: q for q in quotes}
    assert by_chain["Shufersal"].total_price == 19.0
    assert by_chain["Shufersal"].store_name == "Center"
    assert by_chain["Rami Levy"].total_price == 10.0
    assert by_chain["Rami Levy"].missing_item_count == 1


# ============================================================================
# CITIES, PRODUCTS, SAVED CARTS
# ============================================================================

def test_city_list_shapes():
    assert parse_city_list(["Haifa", "Tel Aviv", "Haifa", " "]) == ["Haifa", "Tel Aviv"]
    assert parse_city_list({"cities": [{"city": "Haifa"}, {"name": "Eilat"}]}) == ["Haifa", "Eilat"]
    with pytest.raises(ValueError):
        parse_city_list({"unexpected": True})


def test_timestamps():
    naive = parse_timestamp("2024-03-01T10:00:00", "Asia/Jerusalem")
    assert naive.tzinfo is not None
    assert naive.utcoffset().total_seconds() == 2 * 3600

    assert parse_timestamp("2024-03-01T10:00:00Z").utcoffset().total_seconds() == 0
    assert parse_timestamp(0) == datetime(1970, 1, 1, tzinfo=pytz.utc)
    assert parse_timestamp("yesterday") is None
    assert parse_timestamp(None) is None


def test_grouped_product_list():
    payload = {
        "data": [
            {
                "item_code": 7290000000011,
                "item_name": "Milk 3%",
                "prices": [
                    {"chain": "Shufersal", "store_id": "1", "price": 6.0},
                    {"chain": "Rami Levy", "store_id": "7", "price": 5.0,
                     "timestamp": "2024-03-01 08:00:00"},
                ],
            },
            {"item_name": "Fresh  Bread", "chain": "Victory", "store_id": 3, "price": 8.0},
        ]
    }
    milk, bread = parse_product_list(payload)

    assert milk.identity == "7290000000011"
    assert milk.lowest_price == 5.0
    assert milk.store_prices[1].observed_at is not None
    assert bread.identity == "fresh bread"
    assert bread.store_prices[0].store_key == "Victory:3"


def test_saved_cart_list_and_detail():
    summaries = parse_saved_cart_list([
        {"id": 1, "name": "Weekly", "city": "Haifa", "items_count": 4,
         "created_at": "2024-03-01T10:00:00"},
    ])
    assert summaries[0].id == "1"
    assert summaries[0].item_count == 4
    assert summaries[0].updated_at == summaries[0].created_at

    cart = parse_saved_cart_detail({
        "cart": {
            "cart_id": "1",
            "cart_name": "Weekly",
            "city": "Haifa",
            "items": [
                {"barcode": "7290000000011", "name": "Milk 3%", "quantity": 2},
                {"barcode": "7290000000028", "quantity": 0},
            ],
        }
    })
    assert cart.lines == (CartLine("7290000000011", "Milk 3%", 2),)
    assert cart.to_snapshot().item_count == 2


# ============================================================================
# SINGLE-STORE BASELINE AND UNRECOGNIZED BODIES
# ============================================================================

def test_flat_shape_keeps_backend_worst_price():
    payload = {
        "chain": "Rami Levy",
        "total_price": 80.0,
        "worst_price": 120.0,
        "savings": 40.0,
        "savings_percent": 33.33,
    }
    parsed = parse_cheapest_cart(payload, CART)

    assert len(parsed.quotes) == 1
    assert parsed.worst_price == 120.0


def test_flat_shape_derives_worst_price_from_savings():
    parsed = parse_cheapest_cart({"chain": "Victory", "total_price": 30.0, "savings": 6.0}, CART)
    assert parsed.worst_price == 36.0


def test_store_list_ignores_worst_price():
    payload = {
        "worst_price": 500.0,
        "all_stores": [{"chain": "A", "store_id": "1", "total_price": 10.0}],
    }
    assert parse_cheapest_cart(payload, CART).worst_price is None


def test_store_and_total_keys_name_the_winner():
    payload = {
        "store": "Shufersal",
        "city": "Haifa",
        "total": 50.0,
        "items": [
            {"item_code": "7290000000011", "item_name": "Milk 3%", "requested_quantity": 2,
             "price": 6.5, "total_price": 13.0},
        ],
    }
    parsed = parse_cheapest_cart(payload, CART)

    assert [(q.chain, q.total_price) for q in parsed.quotes] == [("Shufersal", 50.0)]
    assert parsed.quotes[0].item_prices == {"7290000000011": 6.5}


@pytest.mark.parametrize("payload", [{}, {"success": True, "city": "Haifa"}, {"data": {}}])
def test_unrecognized_body_rejected(payload):
    with pytest.raises(ValueError):
        parse_cheapest_cart(payload, CART)


def test_explicit_empty_store_list_is_not_malformed():
    assert parse_cheapest_cart({"all_stores": []}, CART).quotes == []
