"""Price level classification and per-product price summaries"""

import pytest

from domain import PriceLevel, PricedProduct, StorePrice
from price_levels import PriceLevelClassifier, classify_price_levels


def levels_by_store(entries):
    return {entry.store: entry.level for entry in classify_price_levels(entries)}


def test_tie_at_minimum_is_best():
    levels = levels_by_store([("A", 10.0), ("B", 10.0), ("C", 20.0)])
    assert levels == {"A": PriceLevel.BEST, "B": PriceLevel.BEST, "C": PriceLevel.HIGH}


def test_single_entry_is_best():
    assert levels_by_store([("A", 7.5)]) == {"A": PriceLevel.BEST}


def test_two_entries():
    assert levels_by_store([("B", 9.0), ("A", 4.0)]) == {
        "A": PriceLevel.BEST,
        "B": PriceLevel.HIGH,
    }


def test_all_equal_prices_are_best():
    levels = levels_by_store([("A", 3.0), ("B", 3.0), ("C", 3.0)])
    assert set(levels.values()) == {PriceLevel.BEST}


def test_middle_prices_are_mid():
    leveled = classify_price_levels([("D", 20.0), ("A", 5.0), ("C", 12.0), ("B", 12.0), ("E", 20.0)])

    assert [entry.store for entry in leveled] == ["A", "B", "C", "D", "E"]
    assert [entry.level for entry in leveled] == [
        PriceLevel.BEST, PriceLevel.MID, PriceLevel.MID, PriceLevel.HIGH, PriceLevel.HIGH,
    ]


def test_empty_input_rejected():
    with pytest.raises(ValueError):
        PriceLevelClassifier.classify([])


def test_priced_product_summary():
    product = PricedProduct(
        identity="7290000000011",
        display_name="Milk 3%",
        store_prices=(
            StorePrice("Shufersal", "1", 6.0),
            StorePrice("Rami Levy", "7", 4.5),
            StorePrice("Victory", "3", 7.5),
        ),
    )

    assert product.lowest_price == 4.5
    assert product.highest_price == 7.5
    assert product.average_price == pytest.approx(6.0)
    assert product.savings_percent == 40.0
    assert product.best_deal.chain == "Rami Levy"
    assert product.worst_deal.chain == "Victory"
    assert product.price_levels() == {
        "Rami Levy:7": PriceLevel.BEST,
        "Shufersal:1": PriceLevel.MID,
        "Victory:3": PriceLevel.HIGH,
    }


def test_priced_product_without_prices():
    product = PricedProduct(identity="x", display_name="X")

    assert product.lowest_price is None
    assert product.savings_percent == 0.0
    assert product.price_range is None
    assert product.price_levels() == {}
