"""
Domain objects for cart pricing.

- CartLine / CartSnapshot: What is in the cart (immutable copies)
- StoreQuote: One store's total for the whole cart
- CheapestCartResult: Ranked, savings-annotated outcome of a comparison
- StorePrice / PricedProduct: One product's prices across stores
- SavedCart / SavedCartSummary: Named carts persisted by the backend
"""

import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, Iterator, List, Optional, Tuple


class PriceLevel(str, Enum):
    """Qualitative rank of one store's price for a product"""
    BEST = "best"
    MID = "mid"
    HIGH = "high"


def normalize_identity(barcode: Optional[str], name: Optional[str] = None) -> str:
    """
    Build the cart uniqueness key for a product.

    The barcode wins when present; otherwise the name is lowercased and its
    whitespace collapsed so "Milk  3%" and "milk 3%" share one line.

    Raises:
        ValueError: If neither a barcode nor a name is given
    """
    if barcode and barcode.strip():
        return barcode.strip()
    if name and name.strip():
        return re.sub(r"\s+", " ", name.strip().lower())
    raise ValueError("A product needs a barcode or a name to be added to the cart")


@dataclass(frozen=True)
class CartLine:
    """One distinct product in the cart"""
    identity: str
    display_name: str
    quantity: int = 1

    def to_dict(self) -> Dict:
        return {
            "identity": self.identity,
            "display_name": self.display_name,
            "quantity": self.quantity,
        }

    @classmethod
    def from_dict(cls, data: Dict) -> "CartLine":
        return cls(
            identity=str(data["identity"]),
            display_name=str(data.get("display_name") or data["identity"]),
            quantity=int(data.get("quantity", 1)),
        )


@dataclass(frozen=True)
class CartSnapshot:
    """Immutable, ordered copy of the cart at one moment"""
    lines: Tuple[CartLine, ...] = ()

    def __iter__(self) -> Iterator[CartLine]:
        return iter(self.lines)

    def __len__(self) -> int:
        return len(self.lines)

    def __bool__(self) -> bool:
        return bool(self.lines)

    @property
    def is_empty(self) -> bool:
        return not self.lines

    @property
    def item_count(self) -> int:
        """Sum of quantities (not the number of lines)"""
        return sum(line.quantity for line in self.lines)

    @property
    def identities(self) -> List[str]:
        return [line.identity for line in self.lines]

    def get(self, identity: str) -> Optional[CartLine]:
        for line in self.lines:
            if line.identity == identity:
                return line
        return None


@dataclass(frozen=True)
class StoreQuote:
    """
    One store's total for the whole cart.

    Attributes:
        chain: Supermarket chain name
        store_id: Branch identifier within the chain
        total_price: Price of every available cart item at this store
        missing_item_count: Cart items this store does not carry
        store_name: Branch display name, when the backend sends one
        address: Branch address, when the backend sends one
        item_prices: {cart identity: price charged here}
    """
    chain: str
    store_id: str
    total_price: float
    missing_item_count: int = 0
    store_name: Optional[str] = None
    address: Optional[str] = None
    item_prices: Dict[str, float] = field(default_factory=dict, compare=False)

    @property
    def display_name(self) -> str:
        if self.store_name:
            return f"{self.chain} - {self.store_name}"
        return f"{self.chain} #{self.store_id}" if self.store_id else self.chain

    def to_dict(self) -> Dict:
        return {
            "chain": self.chain,
            "store_id": self.store_id,
            "total_price": round(self.total_price, 2),
            "missing_item_count": self.missing_item_count,
        }


@dataclass(frozen=True)
class CheapestCartResult:
    """Resolved outcome of a cheapest-cart comparison (never mutated)"""
    city: str
    cart: CartSnapshot
    best_quote: StoreQuote
    worst_quote: StoreQuote
    worst_total: float  # Savings baseline: worst_quote total or the backend figure
    all_quotes: Tuple[StoreQuote, ...]
    savings_amount: float
    savings_percent: float
    per_item_prices: Dict[str, float] = field(default_factory=dict, compare=False)

    @property
    def missing_items(self) -> List[CartLine]:
        """Cart lines the best store has no price for"""
        if not self.per_item_prices:
            return []
        return [line for line in self.cart if line.identity not in self.per_item_prices]

    def store_rank(self, chain: str, store_id: str) -> Optional[int]:
        """1-based position of a store in the ranking, or None if absent"""
        for position, quote in enumerate(self.all_quotes, start=1):
            if quote.chain == chain and quote.store_id == store_id:
                return position
        return None

    def is_stale(self, current: CartSnapshot) -> bool:
        """True when the cart changed after this result was computed"""
        return current != self.cart

    def to_dict(self) -> Dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "city": self.city,
            "best_quote": self.best_quote.to_dict(),
            "worst_quote": self.worst_quote.to_dict(),
            "worst_total": self.worst_total,
            "all_quotes": [quote.to_dict() for quote in self.all_quotes],
            "savings_amount": round(self.savings_amount, 2),
            "savings_percent": self.savings_percent,
            "per_item_prices": {k: round(v, 2) for k, v in self.per_item_prices.items()},
        }


@dataclass(frozen=True)
class StorePrice:
    """Price of one product at one store"""
    chain: str
    store_id: str
    price: float
    original_name: Optional[str] = None
    observed_at: Optional[datetime] = None
    store_name: Optional[str] = None

    @property
    def store_key(self) -> str:
        return f"{self.chain}:{self.store_id}"


@dataclass(frozen=True)
class PriceRange:
    min: float
    max: float
    avg: float


@dataclass(frozen=True)
class PricedProduct:
    """One product (search result) with its prices across stores"""
    identity: str
    display_name: str
    store_prices: Tuple[StorePrice, ...] = ()
    unit: Optional[str] = None
    manufacturer: Optional[str] = None

    @property
    def lowest_price(self) -> Optional[float]:
        if not self.store_prices:
            return None
        return min(sp.price for sp in self.store_prices)

    @property
    def highest_price(self) -> Optional[float]:
        if not self.store_prices:
            return None
        return max(sp.price for sp in self.store_prices)

    @property
    def average_price(self) -> Optional[float]:
        if not self.store_prices:
            return None
        return sum(sp.price for sp in self.store_prices) / len(self.store_prices)

    @property
    def savings_percent(self) -> float:
        """(highest - lowest) / highest * 100, or 0 when nothing to compare"""
        highest = self.highest_price
        if not highest or highest <= 0:
            return 0.0
        return round((highest - self.lowest_price) / highest * 100, 2)

    @property
    def price_range(self) -> Optional[PriceRange]:
        if not self.store_prices:
            return None
        return PriceRange(
            min=self.lowest_price,
            max=self.highest_price,
            avg=round(self.average_price, 2),
        )

    @property
    def best_deal(self) -> Optional[StorePrice]:
        if not self.store_prices:
            return None
        return min(self.store_prices, key=lambda sp: (sp.price, sp.store_key))

    @property
    def worst_deal(self) -> Optional[StorePrice]:
        if not self.store_prices:
            return None
        return max(self.store_prices, key=lambda sp: (sp.price, sp.store_key))

    def price_levels(self) -> Dict[str, PriceLevel]:
        """{store_key: PriceLevel} for every store price"""
        from price_levels import classify_price_levels

        if not self.store_prices:
            return {}
        return {
            entry.store: entry.level
            for entry in classify_price_levels(
                [(sp.store_key, sp.price) for sp in self.store_prices]
            )
        }


@dataclass(frozen=True)
class SavedCartSummary:
    """List entry for a saved cart"""
    id: str
    name: str
    city: str
    item_count: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass(frozen=True)
class SavedCart:
    """A named cart persisted by the backend (a copy, never the live cart)"""
    id: str
    name: str
    city: str
    lines: Tuple[CartLine, ...] = ()
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def item_count(self) -> int:
        return sum(line.quantity for line in self.lines)

    def to_snapshot(self) -> CartSnapshot:
        return CartSnapshot(self.lines)
