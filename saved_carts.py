"""
Saved Cart Repository - named carts persisted by the backend

A saved cart is a copy: saving reads a CartStore snapshot, loading returns
a SavedCart and only touches a CartStore when the caller asks for it
(load_into with replace or merge).
"""

import logging
from datetime import datetime
from typing import List, Optional

import pytz

from cart_store import CartStore
from cheapest_cart import CartLike, as_snapshot
from domain import SavedCart, SavedCartSummary
from errors import EmptyCartError, PriceServiceRejectedError, ValidationError
from price_api_client import call_async
from schemas import SaveCartRequest

logger = logging.getLogger(__name__)

_OLDEST = datetime.min.replace(tzinfo=pytz.utc)


class SavedCartRepository:
    """CRUD bridge between the live cart and server-side saved carts"""

    def __init__(self, client):
        """
        Args:
            client: PriceApiClient (or any object with the same saved-cart methods)
        """
        self.client = client

    async def save(
        self,
        name: str,
        cart: CartLike,
        city: str,
        cart_id: Optional[str] = None,
    ) -> str:
        """
        Save the cart under a name; pass cart_id to overwrite an existing one.

        Returns:
            Id assigned by the backend

        Raises:
            ValidationError: If name or city is blank
            EmptyCartError: If the cart has no lines (a ValidationError too)
        """
        if not name or not name.strip():
            raise ValidationError("Cart name must not be blank")
        if not city or not city.strip():
            raise ValidationError("A city is required to save a cart")

        snapshot = as_snapshot(cart)
        if snapshot.is_empty:
            raise EmptyCartError("Cannot save an empty cart")

        request = SaveCartRequest.from_snapshot(name.strip(), snapshot, city.strip(), cart_id)
        new_id = await call_async(self.client.save_cart, request)
        logger.info(f"✓ Saved cart '{name.strip()}' ({len(snapshot)} lines) as {new_id}")
        return str(new_id)

    async def list(self) -> List[SavedCartSummary]:
        """Saved carts, most recently updated first"""
        summaries = await call_async(self.client.list_saved_carts)
        ordered = sorted(summaries, key=lambda s: s.updated_at or _OLDEST, reverse=True)
        logger.info(f"Found {len(ordered)} saved carts")
        return ordered

    async def load(self, cart_id: str) -> SavedCart:
        """Fetch one saved cart; the live cart is not modified"""
        saved = await call_async(self.client.get_saved_cart, cart_id)
        logger.info(f"Loaded saved cart {cart_id}: {len(saved.lines)} lines in {saved.city}")
        return saved

    async def load_into(self, store: CartStore, cart_id: str, merge: bool = False) -> SavedCart:
        """Fetch a saved cart and copy its lines into the store"""
        saved = await self.load(cart_id)
        if merge:
            store.merge(saved.lines)
        else:
            store.replace(saved.lines)
        return saved

    async def delete(self, cart_id: str) -> None:
        """Delete a saved cart. Deleting an unknown id succeeds."""
        try:
            await call_async(self.client.delete_saved_cart, cart_id)
        except PriceServiceRejectedError as e:
            if e.status != 404:
                raise
            logger.info(f"Saved cart {cart_id} already gone")
            return
        logger.info(f"✓ Deleted saved cart {cart_id}")
