import asyncio
import sqlite3
from datetime import datetime, timezone

import pytest

from services.cart import Cart
from services.errors import PaymentNotConfirmed, PersistenceError, ValidationError
from services.orders import (
    UNKNOWN_PRESENTATION,
    OrderLifecycleManager,
    OrderStatusPoller,
    StatusTracker,
    is_terminal,
    present_status,
    status_rank,
)

from conftest import FakeOrderStore, make_order, paid

NOW = datetime(2024, 3, 1, 9, 30, tzinfo=timezone.utc)


@pytest.fixture
def store():
    return FakeOrderStore()


@pytest.fixture
def manager(store):
    return OrderLifecycleManager(store, clock=lambda: NOW)


@pytest.fixture
def cart(repository, thali, lassi):
    cart = Cart("42", repository)
    cart.add(thali)
    cart.add(thali)
    cart.add(lassi)
    return cart


async def test_empty_cart_is_rejected_without_persisting(manager, store, repository):
    empty = Cart("42", repository)

    with pytest.raises(ValidationError):
        await manager.checkout(empty, paid(0.0))

    assert store.created == []


async def test_successful_checkout_clears_cart(manager, store, cart, repository):
    total = cart.total()

    order = await manager.checkout(cart, paid(total))

    assert order.amount == pytest.approx(total, abs=0.005)
    assert order.amount == 15.0
    assert order.status == "ordered"
    assert order.date == NOW
    assert order.actor_id == "42"
    assert [(i.id, i.quantity, i.price) for i in order.items] == [("m1", 2, 5.0), ("m2", 1, 5.0)]
    assert store.created == [order]
    assert cart.is_empty
    assert Cart("42", repository).is_empty


async def test_persistence_failure_keeps_cart(repository, cart):
    manager = OrderLifecycleManager(FakeOrderStore(fail_create=True))

    with pytest.raises(PersistenceError):
        await manager.checkout(cart, paid(15.0))

    assert cart.total() == 15.0
    assert Cart("42", repository).total() == 15.0


async def test_cart_clear_failure_after_order_saved_returns_order(manager, store, cart, memory_storage, monkeypatch):
    def locked(key):
        raise sqlite3.OperationalError("database is locked")

    monkeypatch.setattr(memory_storage, "delete", locked)

    order = await manager.checkout(cart, paid(15.0))

    assert store.created == [order]
    assert cart.total() == 15.0
    assert memory_storage.get("cart:42") is not None


@pytest.mark.parametrize("confirmation", [None, paid(15.0, success=False)])
async def test_unconfirmed_payment_keeps_cart(manager, store, cart, confirmation):
    with pytest.raises(PaymentNotConfirmed):
        await manager.checkout(cart, confirmation)

    assert store.created == []
    assert cart.item_count == 3


async def test_amount_mismatch_is_rejected(manager, store, cart):
    with pytest.raises(ValidationError):
        await manager.checkout(cart, paid(14.99))

    assert store.created == []
    assert not cart.is_empty


async def test_sub_cent_difference_is_accepted(manager, cart):
    order = await manager.checkout(cart, paid(15.001))

    assert order.amount == 15.0


async def test_list_orders_newest_first():
    store = FakeOrderStore([make_order("a", day=1), make_order("c", day=3), make_order("b", day=2)])
    manager = OrderLifecycleManager(store)

    orders = await manager.list_orders("42")

    assert [o.id for o in orders] == ["c", "b", "a"]


def test_status_helpers():
    assert status_rank("ordered") < status_rank("in-process") < status_rank("delivered")
    assert status_rank("lost") == -1
    assert is_terminal("delivered")
    assert not is_terminal("in-process")


def test_status_presentation():
    assert present_status("ordered").affordance == "track"
    assert present_status("in-process").label == "In process"
    assert present_status("delivered").affordance == "reorder"
    assert present_status("teleported") == UNKNOWN_PRESENTATION
    assert present_status(None) == UNKNOWN_PRESENTATION


def test_tracker_never_moves_status_backward():
    tracker = StatusTracker()

    tracker.merge([make_order("a", status="in-process")])
    merged = tracker.merge([make_order("a", status="ordered")])

    assert merged[0].status == "in-process"
    assert tracker.status_of("a") == "in-process"


def test_tracker_keeps_terminal_status():
    tracker = StatusTracker()

    tracker.merge([make_order("a", status="delivered")])
    merged = tracker.merge([make_order("a", status="teleported")])

    assert merged[0].status == "delivered"


def test_tracker_accepts_forward_moves():
    tracker = StatusTracker()
    observed = []

    for status in ["ordered", "ordered", "in-process", "delivered"]:
        observed.append(tracker.merge([make_order("a", status=status)])[0].status)

    assert observed == ["ordered", "ordered", "in-process", "delivered"]
    assert tracker.status_of("missing") is None


async def test_poller_delivers_monotonic_statuses():
    store = FakeOrderStore([make_order("a", status="in-process")])
    updates = []

    async def on_update(orders):
        updates.append([o.status for o in orders])

    poller = OrderStatusPoller(OrderLifecycleManager(store), "42", on_update, interval_seconds=60)

    await poller.poll_once()
    store.orders = [make_order("a", status="ordered")]
    await poller.poll_once()
    store.orders = [make_order("a", status="delivered")]
    await poller.poll_once()

    assert updates == [["in-process"], ["in-process"], ["delivered"]]


async def test_poller_skips_overlapping_ticks():
    release = asyncio.Event()

    class SlowStore(FakeOrderStore):
        async def list_by_actor(self, actor_id):
            self.list_calls += 1
            await release.wait()
            return []

    store = SlowStore()

    async def on_update(orders):
        pass

    poller = OrderStatusPoller(OrderLifecycleManager(store), "42", on_update, interval_seconds=60)

    first = asyncio.create_task(poller.poll_once())
    await asyncio.sleep(0)
    skipped = await poller.poll_once()
    release.set()

    assert skipped is None
    assert await first == []
    assert store.list_calls == 1


async def test_poller_ignores_response_after_stop():
    release = asyncio.Event()
    updates = []

    class SlowStore(FakeOrderStore):
        async def list_by_actor(self, actor_id):
            await release.wait()
            return [make_order("a")]

    async def on_update(orders):
        updates.append(orders)

    poller = OrderStatusPoller(OrderLifecycleManager(SlowStore()), "42", on_update, interval_seconds=60)
    pending = asyncio.create_task(poller.poll_once())
    await asyncio.sleep(0)

    await poller.stop()
    release.set()

    assert await pending is None
    assert updates == []


async def test_poller_survives_fetch_failure_and_callback_errors():
    store = FakeOrderStore([make_order("a")], fail_list=True)
    calls = []

    async def on_update(orders):
        calls.append(orders)
        raise RuntimeError("view gone")

    poller = OrderStatusPoller(OrderLifecycleManager(store), "42", on_update, interval_seconds=60)

    assert await poller.poll_once() is None
    store.fail_list = False
    merged = await poller.poll_once()

    assert [o.id for o in merged] == ["a"]
    assert len(calls) == 1


async def test_poller_runs_until_stopped():
    store = FakeOrderStore([make_order("a")])
    ticks = asyncio.Event()

    async def on_update(orders):
        if store.list_calls >= 2:
            ticks.set()

    poller = OrderStatusPoller(OrderLifecycleManager(store), "42", on_update, interval_seconds=0.01)
    poller.start()
    poller.start()

    await asyncio.wait_for(ticks.wait(), timeout=2)
    assert poller.running

    await poller.stop()
    calls = store.list_calls
    await asyncio.sleep(0.05)

    assert not poller.running
    assert store.list_calls == calls
