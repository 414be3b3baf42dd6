"""
Wire schemas for the Champion Cart pricing backend.

The backend has shipped several shapes for the same answers. Every accepted
shape is validated here with Pydantic and normalized into domain objects
before anything else sees it:

Cheapest cart:
- List of stores: {chain, store_id, total_price, ..., all_stores: [...]}
- Flat best store only: {chain, store_id, total_price, item_prices}
- Compare body: {cheapest_store: {...}, all_stores: [{chain_name, branch_id, ...}]}
- Legacy envelope: {success, data: {cheapest_store: "name", store_totals: {...}}}

City list: bare array, or {"cities": [...]}.
Saved carts list: bare array, or {"carts": [...]}.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Annotated, Any, Dict, List, Optional, Tuple, Union

import pytz
from pydantic import AliasChoices, BaseModel, BeforeValidator, ConfigDict, Field, field_validator

from domain import (
    CartLine,
    CartSnapshot,
    PricedProduct,
    SavedCart,
    SavedCartSummary,
    StorePrice,
    StoreQuote,
    normalize_identity,
)

logger = logging.getLogger(__name__)


def _aliases(*names: str) -> AliasChoices:
    return AliasChoices(*names)


def _as_str(value: Any) -> Any:
    if value is None:
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(int(value)) if float(value).is_integer() else str(value)
    return value


# Backend ids arrive as numbers or strings
Code = Annotated[str, BeforeValidator(_as_str)]
OptionalCode = Annotated[Optional[str], BeforeValidator(_as_str)]


class WireModel(BaseModel):
    """Base for all backend payloads: tolerant of unknown fields"""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


# ============================================================================
# REQUESTS
# ============================================================================

class CartItemRequest(WireModel):
    item_name: str
    quantity: int
    barcode: Optional[str] = None


class CheapestCartRequest(WireModel):
    city: str
    items: List[CartItemRequest]

    @classmethod
    def from_snapshot(cls, snapshot: CartSnapshot, city: str) -> "CheapestCartRequest":
        return cls(
            city=city,
            items=[
                CartItemRequest(
                    item_name=line.display_name,
                    quantity=line.quantity,
                    barcode=line.identity if line.identity.isdigit() else None,
                )
                for line in snapshot
            ],
        )

    def to_payload(self) -> Dict:
        return self.model_dump(exclude_none=True)


class SaveCartItemRequest(WireModel):
    barcode: str
    quantity: int
    name: str


class SaveCartRequest(WireModel):
    cart_name: str
    city: str
    items: List[SaveCartItemRequest]
    cart_id: Optional[str] = None

    @classmethod
    def from_snapshot(
        cls,
        name: str,
        snapshot: CartSnapshot,
        city: str,
        cart_id: Optional[str] = None,
    ) -> "SaveCartRequest":
        return cls(
            cart_name=name,
            city=city,
            cart_id=cart_id,
            items=[
                SaveCartItemRequest(
                    barcode=line.identity,
                    quantity=line.quantity,
                    name=line.display_name,
                )
                for line in snapshot
            ],
        )

    def to_payload(self) -> Dict:
        return self.model_dump(exclude_none=True)


# ============================================================================
# CHEAPEST CART RESPONSES
# ============================================================================

class ItemDetailWire(WireModel):
    """One cart item as priced by one store"""
    barcode: OptionalCode = Field(None, validation_alias=_aliases("barcode", "item_code"))
    name: Optional[str] = Field(None, validation_alias=_aliases("name", "item_name"))
    quantity: int = Field(1, validation_alias=_aliases("quantity", "requested_quantity"))
    unit_price: Optional[float] = Field(None, validation_alias=_aliases("unit_price", "price"))
    total_price: Optional[float] = None
    available: bool = True

    def charged_price(self) -> Optional[float]:
        if not self.available:
            return None
        if self.unit_price is not None:
            return self.unit_price
        if self.total_price is not None and self.quantity:
            return self.total_price / self.quantity
        return None


class StoreTotalWire(WireModel):
    """One store's total as reported by the backend"""
    chain: str = Field(validation_alias=_aliases("chain", "chain_name", "chain_display_name"))
    store_id: Code = Field("", validation_alias=_aliases("store_id", "branch_id", "snif_key"))
    store_name: Optional[str] = Field(None, validation_alias=_aliases("store_name", "branch_name"))
    address: Optional[str] = Field(
        None, validation_alias=_aliases("address", "branch_address", "store_address")
    )
    total_price: float = Field(validation_alias=_aliases("total_price", "total"))
    missing_items: Optional[int] = Field(
        None, validation_alias=_aliases("missing_items", "missing_item_count", "missing_count")
    )
    items_detail: List[ItemDetailWire] = Field(
        default_factory=list, validation_alias=_aliases("items_detail", "items")
    )

    @field_validator("missing_items", mode="before")
    @classmethod
    def _count_missing(cls, value):
        if isinstance(value, (list, tuple)):
            return len(value)
        return value

    @field_validator("total_price")
    @classmethod
    def _non_negative(cls, value):
        if value < 0:
            raise ValueError("total_price must not be negative")
        return value


class CheapestCartWire(WireModel):
    """Every known cheapest-cart body, flattened into one tolerant model"""
    success: Optional[bool] = None
    message: Optional[str] = Field(None, validation_alias=_aliases("message", "detail"))
    city: Optional[str] = None

    # Flat best-store fields
    chain: Optional[str] = Field(None, validation_alias=_aliases("chain", "chain_name", "store"))
    store_id: OptionalCode = Field(None, validation_alias=_aliases("store_id", "branch_id"))
    store_name: Optional[str] = Field(None, validation_alias=_aliases("store_name", "branch_name"))
    total_price: Optional[float] = Field(None, validation_alias=_aliases("total_price", "total"))
    worst_price: Optional[float] = None
    savings: Optional[float] = Field(None, validation_alias=_aliases("savings", "savings_amount"))
    savings_percent: Optional[float] = None
    missing_items: Optional[Union[int, List[str]]] = None
    items: List[ItemDetailWire] = Field(default_factory=list)
    item_prices: Dict[str, float] = Field(default_factory=dict)

    # Ranked / nested shapes
    all_stores: List[StoreTotalWire] = Field(
        default_factory=list, validation_alias=_aliases("all_stores", "stores")
    )
    cheapest_store: Optional[Union[StoreTotalWire, str]] = Field(
        None, validation_alias=_aliases("cheapest_store", "best_store")
    )
    store_totals: Dict[str, float] = Field(default_factory=dict)
    data: Optional["CheapestCartWire"] = None

    @field_validator("item_prices", mode="before")
    @classmethod
    def _item_price_list(cls, value):
        # Breakdown lists: [{"item_name": ..., "price": ...}]
        if isinstance(value, list):
            return {
                str(entry.get("item_name") or entry.get("name")): entry.get("price")
                for entry in value
                if isinstance(entry, dict) and entry.get("price") is not None
            }
        return value or {}

    @field_validator("store_totals", mode="before")
    @classmethod
    def _null_totals(cls, value):
        return value or {}

    @field_validator("all_stores", "items", mode="before")
    @classmethod
    def _null_lists(cls, value):
        return value or []


CheapestCartWire.model_rebuild()


@dataclass
class ComparisonPayload:
    """
    Normalized cheapest-cart answer, before local ranking.

    worst_price is the backend's own savings baseline. Only single-store
    bodies carry it, since they list no other store to compare against.
    """
    city: Optional[str]
    quotes: List[StoreQuote] = field(default_factory=list)
    worst_price: Optional[float] = None


def match_identity(snapshot: CartSnapshot, barcode: Optional[str], name: Optional[str]) -> Optional[str]:
    """Map a backend item reference back to the cart line identity"""
    if barcode and snapshot.get(barcode) is not None:
        return barcode
    if name:
        wanted = name.strip().casefold()
        for line in snapshot:
            if line.display_name.strip().casefold() == wanted:
                return line.identity
        try:
            key = normalize_identity(None, name)
        except ValueError:
            return None
        if snapshot.get(key) is not None:
            return key
    return None


def _item_prices_from_details(snapshot: CartSnapshot, details: List[ItemDetailWire]) -> Dict[str, float]:
    prices = {}
    for detail in details:
        price = detail.charged_price()
        if price is None:
            continue
        identity = match_identity(snapshot, detail.barcode, detail.name)
        if identity is not None:
            prices[identity] = price
    return prices


def _item_prices_from_names(snapshot: CartSnapshot, by_name: Dict[str, float]) -> Dict[str, float]:
    prices = {}
    for key, price in by_name.items():
        identity = match_identity(snapshot, key, key)
        if identity is not None and price is not None:
            prices[identity] = float(price)
    return prices


def _quote_from_store(snapshot: CartSnapshot, store: StoreTotalWire) -> StoreQuote:
    missing = store.missing_items
    if missing is None:
        missing = sum(1 for detail in store.items_detail if not detail.available)
    return StoreQuote(
        chain=store.chain,
        store_id=store.store_id,
        total_price=store.total_price,
        missing_item_count=missing,
        store_name=store.store_name,
        address=store.address,
        item_prices=_item_prices_from_details(snapshot, store.items_detail),
    )


def _best_store(snapshot: CartSnapshot, wire: CheapestCartWire) -> Optional[StoreQuote]:
    """The backend's own pick, from whichever field carries it"""
    if isinstance(wire.cheapest_store, StoreTotalWire):
        return _quote_from_store(snapshot, wire.cheapest_store)

    chain = wire.chain
    if chain is None and isinstance(wire.cheapest_store, str):
        chain = wire.cheapest_store
    if chain is None or wire.total_price is None:
        return None

    if isinstance(wire.missing_items, list):
        missing = len(wire.missing_items)
    else:
        missing = wire.missing_items or 0

    item_prices = _item_prices_from_names(snapshot, wire.item_prices)
    if not item_prices and wire.items:
        item_prices = _item_prices_from_details(snapshot, wire.items)

    return StoreQuote(
        chain=chain,
        store_id=wire.store_id or "",
        total_price=wire.total_price,
        missing_item_count=missing,
        store_name=wire.store_name,
        item_prices=item_prices,
    )


def _same_store(a: StoreQuote, b: StoreQuote) -> bool:
    if a.chain != b.chain:
        return False
    return not a.store_id or not b.store_id or a.store_id == b.store_id


def _enrich(listed: StoreQuote, best: StoreQuote) -> StoreQuote:
    return StoreQuote(
        chain=listed.chain,
        store_id=listed.store_id or best.store_id,
        total_price=listed.total_price,
        missing_item_count=listed.missing_item_count or best.missing_item_count,
        store_name=listed.store_name or best.store_name,
        address=listed.address or best.address,
        item_prices=listed.item_prices or best.item_prices,
    )


def parse_cheapest_cart(payload: Dict, snapshot: CartSnapshot) -> ComparisonPayload:
    """
    Normalize any accepted cheapest-cart body into store quotes.

    Args:
        payload: Decoded JSON body
        snapshot: Cart the request was built from (maps item names to identities)

    Returns:
        ComparisonPayload with one StoreQuote per store the backend priced

    Raises:
        pydantic.ValidationError: If a field has the wrong type
        ValueError: If the body names neither a store list nor a best store
    """
    wire = CheapestCartWire.model_validate(payload)
    if wire.data is not None:
        outer_city = wire.city
        wire = wire.data
        wire.city = wire.city or outer_city

    best = _best_store(snapshot, wire)
    listed = wire.model_fields_set & {"all_stores", "store_totals", "cheapest_store"}
    if best is None and not listed:
        raise ValueError("Cheapest-cart body has no store list and no best store")

    quotes = [_quote_from_store(snapshot, store) for store in wire.all_stores]

    if not quotes and wire.store_totals:
        quotes = [
            StoreQuote(chain=name, store_id="", total_price=float(total))
            for name, total in wire.store_totals.items()
        ]

    worst_price = None
    if not quotes and best is not None:
        worst_price = wire.worst_price
        if worst_price is None and wire.savings:
            worst_price = best.total_price + wire.savings
        if worst_price is not None and worst_price <= best.total_price:
            worst_price = None

    if best is not None:
        for index, quote in enumerate(quotes):
            if _same_store(quote, best):
                quotes[index] = _enrich(quote, best)
                break
        else:
            quotes.append(best)

    logger.debug(f"Normalized cheapest-cart body into {len(quotes)} quotes")
    return ComparisonPayload(city=wire.city, quotes=quotes, worst_price=worst_price)


# ============================================================================
# SAVED-CART COMPARISON
# ============================================================================

class CompareItemWire(WireModel):
    barcode: Code = Field(validation_alias=_aliases("barcode", "item_code"))
    name: str = Field(validation_alias=_aliases("name", "item_name"))
    quantity: int = 1
    prices: Optional[Dict[str, Optional[float]]] = None


class CartInfoWire(WireModel):
    cart_id: Code = Field(validation_alias=_aliases("cart_id", "id"))
    cart_name: Optional[str] = Field(None, validation_alias=_aliases("cart_name", "name"))
    city: str


class ComparisonWire(WireModel):
    total_items: Optional[int] = None
    cheapest_store: Optional[StoreTotalWire] = None


class CompareCartWire(WireModel):
    cart_info: CartInfoWire
    items: List[CompareItemWire] = Field(default_factory=list)
    comparison: Optional[ComparisonWire] = None


def parse_saved_cart_comparison(payload: Dict) -> Tuple[str, CartSnapshot, List[StoreQuote]]:
    """
    Normalize a saved-cart comparison into (city, cart, quotes).

    Per-chain totals are rebuilt from each item's price map; the chain named
    as cheapest by the backend contributes its branch details.
    """
    wire = CompareCartWire.model_validate(payload)
    snapshot = CartSnapshot(tuple(
        CartLine(identity=item.barcode, display_name=item.name, quantity=item.quantity)
        for item in wire.items
        if item.quantity >= 1
    ))

    chains: List[str] = []
    for item in wire.items:
        for chain in item.prices or {}:
            if chain not in chains:
                chains.append(chain)

    quotes = []
    for chain in chains:
        total = 0.0
        missing = 0
        item_prices = {}
        for item in wire.items:
            price = (item.prices or {}).get(chain)
            if price is None:
                missing += 1
                continue
            total += price * item.quantity
            item_prices[item.barcode] = price
        quotes.append(StoreQuote(
            chain=chain,
            store_id="",
            total_price=round(total, 2),
            missing_item_count=missing,
            item_prices=item_prices,
        ))

    cheapest = wire.comparison.cheapest_store if wire.comparison else None
    if cheapest is not None:
        best = _quote_from_store(snapshot, cheapest)
        for index, quote in enumerate(quotes):
            if _same_store(quote, best):
                quotes[index] = StoreQuote(
                    chain=quote.chain,
                    store_id=best.store_id,
                    total_price=quote.total_price,
                    missing_item_count=quote.missing_item_count,
                    store_name=best.store_name,
                    address=best.address,
                    item_prices=quote.item_prices,
                )
                break
        else:
            quotes.append(best)

    return wire.cart_info.city, snapshot, quotes


# ============================================================================
# CITIES
# ============================================================================

def parse_city_list(payload: Any) -> List[str]:
    """
    Accept a bare array of names, or an envelope with "cities"/"data".

    Entries may be strings or objects with a "city"/"name" key. Blank and
    duplicate names are dropped, order is kept.

    Raises:
        ValueError: If the payload carries no list of cities
    """
    if isinstance(payload, dict):
        entries = payload.get("cities")
        if entries is None:
            entries = payload.get("data")
    else:
        entries = payload

    if not isinstance(entries, list):
        raise ValueError(f"Unexpected city list payload: {type(payload).__name__}")

    cities = []
    for entry in entries:
        if isinstance(entry, dict):
            entry = entry.get("city") or entry.get("name")
        if isinstance(entry, str) and entry.strip() and entry.strip() not in cities:
            cities.append(entry.strip())
    return cities


# ============================================================================
# PRODUCT SEARCH
# ============================================================================

def parse_timestamp(value: Any, timezone: str = "Asia/Jerusalem") -> Optional[datetime]:
    """
    Parse a backend timestamp into an aware datetime.

    Naive ISO strings are in the backend's local zone; numbers are epoch
    milliseconds. Unparseable values give None.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, (int, float)):
        return datetime.fromtimestamp(value / 1000.0, pytz.utc)
    else:
        try:
            parsed = datetime.fromisoformat(str(value).strip().replace("Z", "+00:00"))
        except ValueError:
            logger.debug(f"Unparseable timestamp: {value!r}")
            return None

    if parsed.tzinfo is None:
        parsed = pytz.timezone(timezone).localize(parsed)
    return parsed


class StorePriceWire(WireModel):
    chain: str = Field(validation_alias=_aliases("chain", "chain_name", "store_name"))
    store_id: Code = Field("", validation_alias=_aliases("store_id", "snif_key", "branch_id"))
    price: float = Field(validation_alias=_aliases("price", "item_price"))
    original_name: Optional[str] = Field(None, validation_alias=_aliases("original_name", "item_name"))
    store_name: Optional[str] = Field(None, validation_alias=_aliases("store_name", "branch_name"))
    timestamp: Optional[Any] = Field(
        None, validation_alias=_aliases("timestamp", "last_updated", "observed_at")
    )


class GroupedProductWire(WireModel):
    item_code: OptionalCode = Field(None, validation_alias=_aliases("item_code", "barcode"))
    item_name: str = Field(validation_alias=_aliases("item_name", "name"))
    prices: Optional[List[StorePriceWire]] = None
    unit: Optional[str] = Field(None, validation_alias=_aliases("unit", "unit_of_measure"))
    manufacturer: Optional[str] = None

    # Ungrouped single-store product
    chain: Optional[str] = None
    store_id: OptionalCode = Field(None, validation_alias=_aliases("store_id", "snif_key"))
    price: Optional[float] = Field(None, validation_alias=_aliases("price", "item_price"))
    timestamp: Optional[Any] = None

    def to_domain(self, timezone: str = "Asia/Jerusalem") -> PricedProduct:
        if self.prices is not None:
            store_prices = [
                StorePrice(
                    chain=sp.chain,
                    store_id=sp.store_id,
                    price=sp.price,
                    original_name=sp.original_name or self.item_name,
                    observed_at=parse_timestamp(sp.timestamp, timezone),
                    store_name=sp.store_name if sp.store_name != sp.chain else None,
                )
                for sp in self.prices
            ]
        elif self.chain is not None and self.price is not None:
            store_prices = [StorePrice(
                chain=self.chain,
                store_id=self.store_id or "",
                price=self.price,
                original_name=self.item_name,
                observed_at=parse_timestamp(self.timestamp, timezone),
            )]
        else:
            store_prices = []

        return PricedProduct(
            identity=normalize_identity(self.item_code, self.item_name),
            display_name=self.item_name,
            store_prices=tuple(store_prices),
            unit=self.unit,
            manufacturer=self.manufacturer,
        )


def parse_product_list(payload: Any, timezone: str = "Asia/Jerusalem") -> List[PricedProduct]:
    """
    Accept a bare product array or an envelope with "data"/"products".

    Raises:
        ValueError: If the payload carries no list of products
        pydantic.ValidationError: If a product entry is malformed
    """
    entries = payload
    if isinstance(payload, dict):
        entries = payload.get("data")
        if entries is None:
            entries = payload.get("products", [])
    if not isinstance(entries, list):
        raise ValueError(f"Unexpected product list payload: {type(payload).__name__}")

    return [GroupedProductWire.model_validate(entry).to_domain(timezone) for entry in entries]


# ============================================================================
# SAVED CARTS
# ============================================================================

class SavedCartItemWire(WireModel):
    barcode: Code = Field(validation_alias=_aliases("barcode", "item_code", "identity"))
    name: Optional[str] = Field(None, validation_alias=_aliases("name", "item_name"))
    quantity: int = 1


class SavedCartSummaryWire(WireModel):
    cart_id: Code = Field(validation_alias=_aliases("cart_id", "id"))
    cart_name: str = Field(validation_alias=_aliases("cart_name", "name"))
    city: str = ""
    item_count: int = Field(0, validation_alias=_aliases("item_count", "items_count"))
    created_at: Optional[Any] = None
    updated_at: Optional[Any] = None

    def to_domain(self, timezone: str = "Asia/Jerusalem") -> SavedCartSummary:
        created = parse_timestamp(self.created_at, timezone)
        return SavedCartSummary(
            id=self.cart_id,
            name=self.cart_name,
            city=self.city,
            item_count=self.item_count,
            created_at=created,
            updated_at=parse_timestamp(self.updated_at, timezone) or created,
        )


class SavedCartDetailWire(SavedCartSummaryWire):
    items: List[SavedCartItemWire] = Field(default_factory=list)

    def to_cart(self, timezone: str = "Asia/Jerusalem") -> SavedCart:
        summary = self.to_domain(timezone)
        return SavedCart(
            id=summary.id,
            name=summary.name,
            city=summary.city,
            lines=tuple(
                CartLine(
                    identity=item.barcode,
                    display_name=item.name or item.barcode,
                    quantity=item.quantity,
                )
                for item in self.items
                if item.quantity >= 1
            ),
            created_at=summary.created_at,
            updated_at=summary.updated_at,
        )


class SaveCartResponseWire(WireModel):
    cart_id: Code = Field(validation_alias=_aliases("cart_id", "id"))
    message: Optional[str] = None


def parse_saved_cart_list(payload: Any, timezone: str = "Asia/Jerusalem") -> List[SavedCartSummary]:
    entries = payload
    if isinstance(payload, dict):
        entries = payload.get("carts")
        if entries is None:
            entries = payload.get("saved_carts", payload.get("data"))
    if not isinstance(entries, list):
        raise ValueError(f"Unexpected saved cart list payload: {type(payload).__name__}")
    return [SavedCartSummaryWire.model_validate(entry).to_domain(timezone) for entry in entries]


def parse_saved_cart_detail(payload: Any, timezone: str = "Asia/Jerusalem") -> SavedCart:
    body = payload.get("cart", payload) if isinstance(payload, dict) else payload
    return SavedCartDetailWire.model_validate(body).to_cart(timezone)
