"""CartStore behaviour: quantities, ordering, subscriptions, serialization"""

import random
import threading

from cart_store import CartStore
from domain import CartLine, CartSnapshot, normalize_identity


# ============================================================================
# MUTATIONS
# ============================================================================

def test_add_same_item_twice_accumulates():
    store = CartStore()
    store.add_item("729001", "Milk", 2)
    store.add_item("729001", "Milk", 3)

    snapshot = store.snapshot()
    assert len(snapshot) == 1
    assert snapshot.get("729001").quantity == 5
    assert store.item_count() == 5


def test_add_keeps_insertion_order_and_first_name():
    store = CartStore()
    store.add_item("a", "Apples")
    store.add_item("b", "Bread")
    store.add_item("a", "apples (renamed)")

    assert store.snapshot().identities == ["a", "b"]
    assert store.snapshot().get("a").display_name == "Apples"


def test_add_non_positive_quantity_is_ignored():
    store = CartStore()
    store.add_item("a", "Apples", 0)
    store.add_item("a", "Apples", -2)

    assert store.snapshot().is_empty
    assert not store.contains("a")


def test_set_quantity_zero_removes_line():
    store = CartStore()
    store.add_item("a", "Apples", 4)
    store.set_quantity("a", 0)

    assert not store.contains("a")
    assert store.item_count() == 0


def test_set_quantity_overwrites_and_keeps_position():
    store = CartStore()
    store.add_item("a", "Apples")
    store.add_item("b", "Bread")
    store.set_quantity("a", 7)

    assert store.snapshot().identities == ["a", "b"]
    assert store.quantity_of("a") == 7


def test_set_quantity_on_missing_item_is_noop():
    store = CartStore()
    store.set_quantity("ghost", 3)
    assert store.line_count() == 0


def test_remove_missing_item_does_not_raise():
    store = CartStore()
    store.add_item("a", "Apples")
    store.remove_item("not-there")
    assert store.line_count() == 1


def test_clear_empties_cart():
    store = CartStore()
    store.add_item("a", "Apples", 2)
    store.add_item("b", "Bread")
    store.clear()

    assert store.snapshot().is_empty
    assert store.item_count() == 0


def test_item_count_matches_lines_after_random_operations():
    rng = random.Random(42)
    store = CartStore()
    identities = ["a", "b", "c", "d"]

    for _ in range(500):
        identity = rng.choice(identities)
        op = rng.randrange(3)
        if op == 0:
            store.add_item(identity, identity.upper(), rng.randint(-1, 4))
        elif op == 1:
            store.set_quantity(identity, rng.randint(-1, 5))
        else:
            store.remove_item(identity)

        snapshot = store.snapshot()
        assert store.item_count() == sum(line.quantity for line in snapshot)
        assert all(line.quantity >= 1 for line in snapshot)
        assert len(set(snapshot.identities)) == len(snapshot)


def test_concurrent_adds_do_not_lose_updates():
    store = CartStore()

    def worker():
        for _ in range(200):
            store.add_item("milk", "Milk", 1)

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert store.quantity_of("milk") == 1600


# ============================================================================
# SNAPSHOTS AND SUBSCRIPTIONS
# ============================================================================

def test_snapshot_is_not_affected_by_later_mutations():
    store = CartStore()
    store.add_item("a", "Apples")
    before = store.snapshot()
    store.add_item("b", "Bread")

    assert before.identities == ["a"]
    assert store.snapshot().identities == ["a", "b"]


def test_subscribers_receive_each_change():
    store = CartStore()
    seen = []
    store.subscribe(lambda snapshot: seen.append(snapshot.item_count))

    store.add_item("a", "Apples", 2)
    store.set_quantity("a", 2)  # unchanged, not published
    store.add_item("b", "Bread")
    store.remove_item("a")

    assert seen == [2, 3, 1]


def test_unsubscribe_stops_notifications():
    store = CartStore()
    seen = []
    unsubscribe = store.subscribe(seen.append)

    store.add_item("a", "Apples")
    unsubscribe()
    unsubscribe()
    store.add_item("b", "Bread")

    assert len(seen) == 1


def test_failing_subscriber_does_not_block_others():
    store = CartStore()
    seen = []

    def broken(snapshot):
        raise RuntimeError("boom")

    store.subscribe(broken)
    store.subscribe(seen.append)
    store.add_item("a", "Apples")

    assert len(seen) == 1
    assert store.contains("a")


# ============================================================================
# REPLACE / MERGE / SERIALIZATION
# ============================================================================

def test_replace_and_merge():
    store = CartStore()
    store.add_item("a", "Apples", 1)

    store.merge([CartLine("a", "Apples", 2), CartLine("b", "Bread", 1)])
    assert store.quantity_of("a") == 3
    assert store.quantity_of("b") == 1

    store.replace([CartLine("c", "Cheese", 2)])
    assert store.snapshot().identities == ["c"]


def test_records_round_trip_skips_malformed():
    store = CartStore()
    store.add_item("a", "Apples", 2)
    store.add_item("b", "Bread")
    records = store.to_records()

    restored = CartStore()
    restored.load_records(records + [{"display_name": "no identity"}])

    assert restored.snapshot() == store.snapshot()


def test_constructor_drops_invalid_lines():
    store = CartStore([CartLine("a", "Apples", 0), CartLine("b", "Bread", 2)])
    assert store.snapshot() == CartSnapshot((CartLine("b", "Bread", 2),))


def test_normalize_identity_prefers_barcode():
    assert normalize_identity(" 7290001 ", "Milk") == "7290001"
    assert normalize_identity(None, "  Milk   3% ") == "milk 3%"
