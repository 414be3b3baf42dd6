"""
Cheapest Cart Resolver - cross-store comparison of the whole cart

Pricing itself happens on the backend; this module applies the local
ranking and derivation rules to whatever quotes come back:

1. Rank every quote ascending by total price, then fewer missing items,
   then chain name and store id (deterministic order for equal totals)
2. Best quote = first ranked quote that carries at least one cart item
3. Worst quote = most expensive quote of the full ranking; a single-store
   answer may carry a higher baseline (worst_price) that becomes the worst total
4. Savings = worst total - best total, and as a percentage of worst total
5. Per-item prices = what the best store charges for each cart line

Resolution is all-or-nothing: either a complete CheapestCartResult or one
of the errors in errors.py. Nothing is retried or cached here.
"""

import asyncio
import logging
from typing import Iterable, List, Optional, Sequence, Union

import pydantic

from cart_store import CartStore
from domain import CartLine, CartSnapshot, CheapestCartResult, StoreQuote
from errors import (
    EmptyCartError,
    NoAvailableStoresError,
    PriceServiceUnavailableError,
    ValidationError,
)
from price_api_client import call_async
from schemas import ComparisonPayload, parse_cheapest_cart

logger = logging.getLogger(__name__)

CartLike = Union[CartStore, CartSnapshot, Iterable[CartLine]]


def as_snapshot(cart: CartLike) -> CartSnapshot:
    """Take an immutable copy of whatever cart representation was passed"""
    if isinstance(cart, CartStore):
        return cart.snapshot()
    if isinstance(cart, CartSnapshot):
        return cart
    return CartSnapshot(tuple(cart))


def rank_quotes(quotes: Sequence[StoreQuote]) -> List[StoreQuote]:
    """Ascending by total, then fewer missing items, then chain and store id"""
    return sorted(
        quotes,
        key=lambda q: (q.total_price, q.missing_item_count, q.chain, q.store_id),
    )


def build_result(
    snapshot: CartSnapshot,
    city: str,
    quotes: Sequence[StoreQuote],
    worst_price: Optional[float] = None,
) -> CheapestCartResult:
    """
    Turn raw store quotes into a ranked, savings-annotated result.

    A quote missing every cart item stays in all_quotes for display but is
    never crowned best.

    Args:
        snapshot: Cart the quotes were computed for
        city: City of the comparison
        quotes: One StoreQuote per store the backend priced
        worst_price: Backend savings baseline for single-store answers;
            used only when it exceeds the most expensive quote

    Returns:
        CheapestCartResult

    Raises:
        NoAvailableStoresError: If no quote carries any cart item
    """
    if not quotes:
        logger.warning(f"No stores returned for {city}")
        raise NoAvailableStoresError(city)

    ranked = rank_quotes(quotes)
    cart_size = len(snapshot)
    usable = [q for q in ranked if q.missing_item_count < cart_size]

    if not usable:
        logger.warning(f"All {len(ranked)} stores in {city} are missing every cart item")
        raise NoAvailableStoresError(city)

    best = usable[0]
    worst = ranked[-1]

    worst_total = worst.total_price
    if worst_price is not None and worst_price > worst_total:
        worst_total = worst_price

    savings = max(worst_total - best.total_price, 0.0)
    if worst_total > 0:
        savings_percent = round(savings / worst_total * 100, 2)
    else:
        savings_percent = 0.0

    logger.info(
        f"✓ Cheapest in {city}: {best.display_name} at {best.total_price:.2f} "
        f"(saves {savings:.2f}, {savings_percent}%, {len(ranked)} stores)"
    )

    return CheapestCartResult(
        city=city,
        cart=snapshot,
        best_quote=best,
        worst_quote=worst,
        worst_total=round(worst_total, 2),
        all_quotes=tuple(ranked),
        savings_amount=round(savings, 2),
        savings_percent=savings_percent,
        per_item_prices=dict(best.item_prices),
    )


class CheapestCartResolver:
    """Resolves a cart + city into a CheapestCartResult via the pricing backend"""

    def __init__(self, client):
        """
        Args:
            client: PriceApiClient (or any object with the same methods)
        """
        self.client = client

    async def resolve(self, cart: CartLike, city: str) -> CheapestCartResult:
        """
        Compare the cart across every store in the city.

        The cart is copied before the request is sent and the copy is stored
        in the result, so callers can detect staleness with
        result.is_stale(store.snapshot()). The coroutine can be cancelled at
        any point without touching cart state.

        Raises:
            EmptyCartError: If the cart has no lines (no request is sent)
            ValidationError: If city is blank
            NoAvailableStoresError: If no store can price the cart
            PriceServiceUnavailableError: On transport failure
            PriceServiceRejectedError: On an error status from the backend
        """
        snapshot = as_snapshot(cart)
        if snapshot.is_empty:
            raise EmptyCartError("Add items to the cart before comparing prices")
        if not city or not city.strip():
            raise ValidationError("A city is required to compare prices")

        city = city.strip()
        logger.info(f"Resolving cheapest cart: {len(snapshot)} lines in {city}")

        answer = self._payload_from(
            await call_async(self.client.calculate_cheapest_cart, snapshot, city), snapshot
        )
        return build_result(snapshot, city, answer.quotes, answer.worst_price)

    @staticmethod
    def _payload_from(payload, snapshot: CartSnapshot) -> ComparisonPayload:
        """Accept a normalized payload, a raw decoded body or a plain quote list"""
        if isinstance(payload, ComparisonPayload):
            return payload
        if isinstance(payload, dict):
            try:
                return parse_cheapest_cart(payload, snapshot)
            except (pydantic.ValidationError, ValueError) as e:
                raise PriceServiceUnavailableError("Malformed cheapest-cart response", cause=e)
        if payload is None:
            raise PriceServiceUnavailableError("Empty cheapest-cart response")
        return ComparisonPayload(city=None, quotes=list(payload))

    async def resolve_saved_cart(self, cart_id: str) -> CheapestCartResult:
        """Rank the backend's comparison of a saved cart with the same rules"""
        city, snapshot, quotes = await call_async(self.client.compare_saved_cart, cart_id)
        if snapshot.is_empty:
            raise EmptyCartError(f"Saved cart {cart_id} has no items")
        return build_result(snapshot, city, quotes)


def resolve_cheapest_cart(client, cart: CartLike, city: str) -> CheapestCartResult:
    """Blocking convenience wrapper for scripts"""
    return asyncio.run(CheapestCartResolver(client).resolve(cart, city))
