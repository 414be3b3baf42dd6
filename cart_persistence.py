"""
Local persistence of the cart between sessions

LocalCartStorage writes CartStore snapshots to the local database and
reads them back. attach() subscribes it to a store so every published
snapshot is saved without the UI having to ask: the subscriber only queues
the snapshot, and a writer thread saves the newest one, so cart mutations
never wait on a database transaction. It also keeps a short history of
resolved comparisons.
"""

import logging
import queue
import threading
from typing import Callable, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from cart_store import CartStore
from database import DatabaseManager
from domain import CartLine, CartSnapshot, CheapestCartResult

logger = logging.getLogger(__name__)

_STOP = object()


class SnapshotWriter:
    """Background thread that saves the newest queued snapshot"""

    def __init__(self, save: Callable[[CartSnapshot], None]):
        self._save = save
        self._queue: "queue.Queue" = queue.Queue()
        self._thread = threading.Thread(target=self._run, name="cart-snapshot-writer", daemon=True)
        self._thread.start()

    def submit(self, snapshot: CartSnapshot) -> None:
        self._queue.put(snapshot)

    def flush(self) -> None:
        """Block until every queued snapshot has been handled"""
        self._queue.join()

    def stop(self) -> None:
        """Save what is still queued, then end the thread"""
        self._queue.put(_STOP)
        self._thread.join()

    def _run(self) -> None:
        while True:
            batch = [self._queue.get()]
            while True:
                try:
                    batch.append(self._queue.get_nowait())
                except queue.Empty:
                    break

            snapshots = [item for item in batch if item is not _STOP]
            try:
                if snapshots:
                    # Older snapshots in the batch are superseded
                    self._save(snapshots[-1])
            except SQLAlchemyError as e:
                logger.error(f"✗ Could not persist cart snapshot: {e}")
            finally:
                for _ in batch:
                    self._queue.task_done()

            if len(snapshots) != len(batch):
                return


class LocalCartStorage:
    """Saves and restores cart snapshots through SQLAlchemy"""

    def __init__(self, db_manager: DatabaseManager, cart_key: str = "default"):
        """
        Args:
            db_manager: Initialized DatabaseManager (init_db already called)
            cart_key: Which local cart to read and write
        """
        self.db_manager = db_manager
        self.cart_key = cart_key
        self._writer: Optional[SnapshotWriter] = None

    def save_snapshot(self, snapshot: CartSnapshot) -> None:
        """Replace the stored lines with the snapshot's lines"""
        from models import CartLineRecord

        with self.db_manager.session_scope() as session:
            session.query(CartLineRecord).filter(
                CartLineRecord.cart_key == self.cart_key
            ).delete()

            for position, line in enumerate(snapshot):
                session.add(CartLineRecord(
                    cart_key=self.cart_key,
                    identity=line.identity,
                    display_name=line.display_name,
                    quantity=line.quantity,
                    position=position,
                ))

        logger.debug(f"Saved {len(snapshot)} cart lines under '{self.cart_key}'")

    def load_snapshot(self) -> CartSnapshot:
        """Stored lines in insertion order (empty when nothing was saved)"""
        from models import CartLineRecord

        with self.db_manager.session_scope() as session:
            records = session.query(CartLineRecord).filter(
                CartLineRecord.cart_key == self.cart_key
            ).order_by(CartLineRecord.position).all()

            lines = tuple(
                CartLine(
                    identity=record.identity,
                    display_name=record.display_name,
                    quantity=record.quantity,
                )
                for record in records
                if record.quantity >= 1
            )

        return CartSnapshot(lines)

    def restore(self, store: CartStore) -> CartSnapshot:
        """Load the stored cart into the store, replacing its contents"""
        snapshot = self.load_snapshot()
        store.replace(snapshot.lines)
        logger.info(f"✓ Restored {len(snapshot)} cart lines from '{self.cart_key}'")
        return snapshot

    def attach(self, store: CartStore) -> Callable[[], None]:
        """
        Persist every snapshot the store publishes, off the caller's thread.

        Returns:
            Detach function: unsubscribes, saves anything still queued and
            stops the writer thread
        """
        if self._writer is not None:
            raise RuntimeError(f"Cart storage '{self.cart_key}' is already attached")

        writer = SnapshotWriter(self.save_snapshot)
        self._writer = writer
        unsubscribe = store.subscribe(writer.submit)

        def detach() -> None:
            unsubscribe()
            if self._writer is writer:
                self._writer = None
                writer.stop()

        return detach

    def flush(self) -> None:
        """Wait until snapshots queued by attach() are written"""
        if self._writer is not None:
            self._writer.flush()

    def record_result(self, result: CheapestCartResult) -> None:
        """Append a resolved comparison to the local history"""
        from models import ComparisonRecord

        with self.db_manager.session_scope() as session:
            session.add(ComparisonRecord(
                city=result.city,
                best_chain=result.best_quote.chain,
                best_store_id=result.best_quote.store_id,
                best_total=result.best_quote.total_price,
                worst_total=result.worst_total,
                savings_percent=result.savings_percent,
                store_count=len(result.all_quotes),
                item_count=result.cart.item_count,
            ))

    def recent_results(self, city: Optional[str] = None, limit: int = 10) -> List[dict]:
        """Most recent comparison summaries, newest first"""
        from models import ComparisonRecord

        with self.db_manager.session_scope() as session:
            query = session.query(ComparisonRecord)
            if city:
                query = query.filter(ComparisonRecord.city == city)
            records = query.order_by(
                ComparisonRecord.recorded_at.desc(), ComparisonRecord.id.desc()
            ).limit(limit).all()

            return [
                {
                    "city": r.city,
                    "best_chain": r.best_chain,
                    "best_store_id": r.best_store_id,
                    "best_total": r.best_total,
                    "worst_total": r.worst_total,
                    "savings_percent": r.savings_percent,
                    "store_count": r.store_count,
                    "item_count": r.item_count,
                    "recorded_at": r.recorded_at,
                }
                for r in records
            ]
