import os

# Settings require a token at import time
os.environ.setdefault("TELEGRAM_BOT_TOKEN", "test-token")
os.environ.setdefault("STORAGE_DB_PATH", os.path.join(".data", "test_client_storage.db"))

import math  # noqa: E402
from datetime import datetime, timezone  # noqa: E402

import pytest  # noqa: E402

from models import Coordinate, MenuItem, Order, OrderItem, PaymentConfirmation, Restaurant  # noqa: E402
from services.errors import FetchFailed, PersistenceError  # noqa: E402
from services.storage import MemoryStorage, Repository  # noqa: E402

HISAR = Coordinate(latitude=29.1492, longitude=75.7217)


def north_of(origin: Coordinate, km: float) -> Coordinate:
    """Point km kilometres due north of origin."""
    return Coordinate(
        latitude=origin.latitude + math.degrees(km / 6371.0),
        longitude=origin.longitude,
    )


def make_restaurant(restaurant_id, coordinate=HISAR, rating=4.0, cuisine="North Indian", name=None):
    return Restaurant(
        id=restaurant_id,
        name=name or f"Restaurant {restaurant_id}",
        cuisine=cuisine,
        rating=rating,
        price_range="$$",
        address="Hisar",
        coordinate=coordinate,
    )


def make_order(order_id, status="ordered", day=1, amount=10.0, actor_id="42"):
    return Order(
        id=order_id,
        items=[OrderItem(id="m1", name="Thali", price=amount, quantity=1)],
        amount=amount,
        date=datetime(2024, 1, day, 12, tzinfo=timezone.utc),
        status=status,
        actor_id=actor_id,
    )


def paid(amount, success=True):
    return PaymentConfirmation(success=success, client_secret="secret", amount=amount)


# ---------- fakes ----------
class FakeRestaurantStore:
    def __init__(self, restaurants=None, fail=False):
        self.restaurants = list(restaurants or [])
        self.fail = fail
        self.calls = []

    async def search(self, query=None, coordinate=None):
        self.calls.append({"query": query, "coordinate": coordinate})
        if self.fail:
            raise FetchFailed("store down")
        return list(self.restaurants)


class FakeGeolocator:
    def __init__(self, coordinate=None, error=None):
        self.coordinate = coordinate
        self.error = error

    async def get_current_position(self):
        if self.error is not None:
            raise self.error
        return self.coordinate


class FakeOrderStore:
    def __init__(self, orders=None, fail_create=False, fail_list=False):
        self.orders = list(orders or [])
        self.created = []
        self.fail_create = fail_create
        self.fail_list = fail_list
        self.list_calls = 0

    async def create(self, order):
        if self.fail_create:
            raise PersistenceError("order store down")
        self.created.append(order)
        return order

    async def list_by_actor(self, actor_id):
        self.list_calls += 1
        if self.fail_list:
            raise FetchFailed("order store down")
        return [o for o in self.orders if o.actor_id == actor_id]


# ---------- fixtures ----------
@pytest.fixture
def memory_storage():
    return MemoryStorage()


@pytest.fixture
def repository(memory_storage):
    return Repository(memory_storage)


@pytest.fixture
def thali():
    return MenuItem(id="m1", name="Thali", price=5.0)


@pytest.fixture
def lassi():
    return MenuItem(id="m2", name="Lassi", price=5.0)
