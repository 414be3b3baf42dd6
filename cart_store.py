"""
In-memory cart state with publish/subscribe.

One CartStore is constructed at application start and handed to every
consumer. All mutations go through a single re-entrant lock, so concurrent
add_item() calls never lose a quantity update. Readers get immutable
CartSnapshot objects and never see a cart change mid-iteration.

Subscribers are called with the new snapshot after every mutation that
changed the cart, in subscription order, while the lock is held so that
snapshots are delivered in the order they were produced. Callbacks therefore
must return quickly; slow work such as database writes belongs on another
thread (LocalCartStorage.attach queues snapshots for a writer thread).
"""

import logging
import threading
from collections import OrderedDict
from typing import Callable, Dict, Iterable, List, Optional

from domain import CartLine, CartSnapshot

logger = logging.getLogger(__name__)

Subscriber = Callable[[CartSnapshot], None]


class CartStore:
    """Authoritative, observable cart state"""

    def __init__(self, lines: Optional[Iterable[CartLine]] = None):
        self._lock = threading.RLock()
        self._lines: "OrderedDict[str, CartLine]" = OrderedDict()
        self._subscribers: List[Subscriber] = []

        for line in lines or ():
            if line.quantity >= 1:
                self._lines[line.identity] = line

        self._snapshot = CartSnapshot(tuple(self._lines.values()))

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def add_item(self, identity: str, display_name: str, quantity: int = 1) -> None:
        """
        Add quantity of a product; existing lines keep their position.

        Non-positive quantities are ignored rather than raised.
        """
        if quantity < 1:
            logger.debug(f"Ignoring add of {identity} with quantity {quantity}")
            return

        with self._lock:
            existing = self._lines.get(identity)
            if existing is not None:
                self._lines[identity] = CartLine(
                    identity=identity,
                    display_name=existing.display_name,
                    quantity=existing.quantity + quantity,
                )
            else:
                self._lines[identity] = CartLine(identity, display_name, quantity)
            self._publish()

    def set_quantity(self, identity: str, quantity: int) -> None:
        """Overwrite a line's quantity; zero or less removes the line"""
        if quantity <= 0:
            self.remove_item(identity)
            return

        with self._lock:
            existing = self._lines.get(identity)
            if existing is None:
                logger.debug(f"set_quantity on {identity}: not in cart")
                return
            if existing.quantity == quantity:
                return
            self._lines[identity] = CartLine(identity, existing.display_name, quantity)
            self._publish()

    def remove_item(self, identity: str) -> None:
        """Delete a line; absent identities are a no-op"""
        with self._lock:
            if self._lines.pop(identity, None) is not None:
                self._publish()

    def clear(self) -> None:
        with self._lock:
            if self._lines:
                self._lines.clear()
                self._publish()

    def replace(self, lines: Iterable[CartLine]) -> None:
        """Swap the whole cart for the given lines (e.g. a loaded saved cart)"""
        with self._lock:
            self._lines.clear()
            for line in lines:
                self._merge_line(line)
            self._publish()

    def merge(self, lines: Iterable[CartLine]) -> None:
        """Add the given lines on top of the current cart"""
        with self._lock:
            for line in lines:
                self._merge_line(line)
            self._publish()

    def _merge_line(self, line: CartLine) -> None:
        if line.quantity < 1:
            return
        existing = self._lines.get(line.identity)
        if existing is None:
            self._lines[line.identity] = line
        else:
            self._lines[line.identity] = CartLine(
                line.identity, existing.display_name, existing.quantity + line.quantity
            )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def snapshot(self) -> CartSnapshot:
        with self._lock:
            return self._snapshot

    def item_count(self) -> int:
        """Sum of all line quantities"""
        return self.snapshot().item_count

    def line_count(self) -> int:
        return len(self.snapshot())

    def contains(self, identity: str) -> bool:
        with self._lock:
            return identity in self._lines

    def quantity_of(self, identity: str) -> int:
        with self._lock:
            line = self._lines.get(identity)
            return line.quantity if line else 0

    # ------------------------------------------------------------------
    # Observation
    # ------------------------------------------------------------------

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """
        Register a callback for new snapshots.

        Returns:
            A function that unsubscribes the callback (safe to call twice)
        """
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    def _publish(self) -> None:
        self._snapshot = CartSnapshot(tuple(self._lines.values()))
        for callback in list(self._subscribers):
            try:
                callback(self._snapshot)
            except Exception as e:
                logger.error(f"Cart subscriber {callback!r} failed: {e}")

    # ------------------------------------------------------------------
    # Serialization for the local storage collaborator
    # ------------------------------------------------------------------

    def to_records(self) -> List[Dict]:
        return [line.to_dict() for line in self.snapshot()]

    def load_records(self, records: Iterable[Dict]) -> None:
        """Replace the cart with serialized lines, skipping malformed records"""
        lines = []
        for record in records:
            try:
                lines.append(CartLine.from_dict(record))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping malformed cart record {record!r}: {e}")
        self.replace(lines)
