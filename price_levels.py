"""
Price level classification for one product across stores.

Classification is by price value, not by rank position:
- Every entry at the lowest price → BEST
- Every entry at the highest price → HIGH (unless it is also the lowest)
- Everything strictly in between → MID
"""

from dataclasses import dataclass
from typing import List, Sequence, Tuple

from domain import PriceLevel


@dataclass(frozen=True)
class LeveledPrice:
    """A (store, price) entry annotated with its level"""
    store: str
    price: float
    level: PriceLevel


def classify_price_levels(entries: Sequence[Tuple[str, float]]) -> List[LeveledPrice]:
    """
    Assign BEST / MID / HIGH to every (store, price) entry of one product.

    Args:
        entries: Non-empty list of (store identifier, price >= 0)

    Returns:
        Entries sorted ascending by price (ties by store), each with its level

    Raises:
        ValueError: If entries is empty
    """
    if not entries:
        raise ValueError("Cannot classify prices of a product with no store prices")

    ordered = sorted(entries, key=lambda entry: (entry[1], entry[0]))
    lowest = ordered[0][1]
    highest = ordered[-1][1]

    leveled = []
    for store, price in ordered:
        if price == lowest:
            level = PriceLevel.BEST
        elif price == highest:
            level = PriceLevel.HIGH
        else:
            level = PriceLevel.MID
        leveled.append(LeveledPrice(store=store, price=price, level=level))

    return leveled


class PriceLevelClassifier:
    """Stateless wrapper so the classifier can be injected like other services"""

    @staticmethod
    def classify(entries: Sequence[Tuple[str, float]]) -> List[LeveledPrice]:
        return classify_price_levels(entries)
