import asyncio

import pytest

from models import Direction, LocationMode, MenuItem, ReferencePoint
from services.errors import FetchFailed
from services.ranking import (
    IdPrefixPolicy,
    LastNPolicy,
    RankingService,
    SearchTracker,
    parse_radius,
    rank_restaurants,
    sort_menu,
    top_rated,
)

from conftest import HISAR, FakeRestaurantStore, make_restaurant, north_of

HERE = ReferencePoint(mode=LocationMode.DEVICE, coordinate=HISAR)


@pytest.fixture
def spread():
    """Three restaurants 3, 7 and 1 km north of the reference point."""
    return [
        make_restaurant("three", north_of(HISAR, 3)),
        make_restaurant("seven", north_of(HISAR, 7)),
        make_restaurant("one", north_of(HISAR, 1)),
    ]


def ids(ranked):
    return [r.restaurant.id for r in ranked]


def test_radius_filter_then_sort_by_distance(spread):
    ranked = rank_restaurants(spread, reference=HERE, radius=5)

    assert ids(ranked) == ["one", "three"]
    assert ranked[0].distance_km == pytest.approx(1, rel=1e-6)
    assert ranked[1].distance_km == pytest.approx(3, rel=1e-6)
    assert all(r.direction == Direction.N for r in ranked)


def test_no_reference_and_no_filter_keeps_store_order(spread):
    ranked = rank_restaurants(spread)

    assert [r.restaurant for r in ranked] == spread
    assert all(r.distance_km is None and r.direction is None for r in ranked)


def test_text_query_reference_is_not_annotated(spread):
    reference = ReferencePoint(mode=LocationMode.TEXT_QUERY, query="thali")

    ranked = rank_restaurants(spread, reference=reference, radius=2)

    assert ids(ranked) == ["three", "seven", "one"]


def test_duplicate_ids_are_dropped(spread):
    ranked = rank_restaurants(spread + [spread[0]])

    assert ids(ranked) == ["three", "seven", "one"]


def test_popular_keeps_high_ratings():
    candidates = [
        make_restaurant("a", rating=4.4),
        make_restaurant("b", rating=4.5),
        make_restaurant("c", rating=4.9),
    ]

    ranked = rank_restaurants(candidates, category="popular", popular_min_rating=4.5)

    assert ids(ranked) == ["b", "c"]


def test_cuisine_filter_is_case_insensitive_substring():
    candidates = [
        make_restaurant("a", cuisine="North Indian, Mughlai"),
        make_restaurant("b", cuisine="Fast Food"),
        make_restaurant("c", cuisine="south indian"),
    ]

    assert ids(rank_restaurants(candidates, category="INDIAN")) == ["a", "c"]
    assert ids(rank_restaurants(candidates, category="fast food")) == ["b"]


def test_new_arrivals_last_n_policy():
    candidates = [make_restaurant(str(i)) for i in range(8)]

    ranked = rank_restaurants(candidates, category="new", new_arrivals=LastNPolicy(3))

    assert ids(ranked) == ["5", "6", "7"]


def test_new_arrivals_id_prefix_policy():
    candidates = [make_restaurant("res-1"), make_restaurant("old-1"), make_restaurant("res-2")]

    ranked = rank_restaurants(candidates, category="new", new_arrivals=IdPrefixPolicy("res"))

    assert ids(ranked) == ["res-1", "res-2"]


def test_last_n_policy_rejects_negative_count():
    with pytest.raises(ValueError):
        LastNPolicy(-1)


@pytest.mark.parametrize("value, expected", [("all", None), (None, None), ("5", 5.0), (2.5, 2.5), (" ALL ", None)])
def test_parse_radius(value, expected):
    assert parse_radius(value) == expected


@pytest.mark.parametrize("value", [0, -3, "0", "far"])
def test_parse_radius_rejects_invalid(value):
    with pytest.raises(ValueError):
        parse_radius(value)


def test_top_rated_and_menu_sort():
    restaurants = [
        make_restaurant("a", rating=3.9),
        make_restaurant("b", rating=4.8),
        make_restaurant("c", rating=4.1),
        make_restaurant("d", rating=4.8),
        make_restaurant("e", rating=2.0),
    ]
    menu = [
        MenuItem(id="1", name="Naan", price=2),
        MenuItem(id="2", name="Thali", price=9),
        MenuItem(id="3", name="Lassi", price=4),
    ]

    assert [r.id for r in top_rated(restaurants)] == ["b", "d", "c", "a"]
    assert [i.id for i in sort_menu(menu, "low_to_high")] == ["1", "3", "2"]
    assert [i.id for i in sort_menu(menu, "high_to_low")] == ["2", "3", "1"]
    assert [i.id for i in sort_menu(menu, "none")] == ["1", "2", "3"]


async def test_service_queries_store_by_coordinate(spread):
    store = FakeRestaurantStore(spread)
    service = RankingService(store, new_arrivals=LastNPolicy(2))

    ranked = await service.search(reference=HERE, radius="5")

    assert ids(ranked) == ["one", "three"]
    assert store.calls == [{"query": None, "coordinate": HISAR}]


async def test_service_queries_store_by_text(spread):
    store = FakeRestaurantStore(spread)
    service = RankingService(store)
    reference = ReferencePoint(mode=LocationMode.TEXT_QUERY, query="thali")

    await service.search(reference=reference)

    assert store.calls == [{"query": "thali", "coordinate": None}]


async def test_service_propagates_fetch_failure():
    service = RankingService(FakeRestaurantStore(fail=True))

    with pytest.raises(FetchFailed):
        await service.search()


async def test_tracker_keeps_previous_results_on_failure(spread):
    store = FakeRestaurantStore(spread)
    tracker = SearchTracker(RankingService(store))
    first = await tracker.search(reference=HERE)

    store.fail = True
    with pytest.raises(FetchFailed):
        await tracker.search(reference=HERE)

    assert tracker.results == first


async def test_tracker_discards_superseded_response(spread):
    release_first = asyncio.Event()

    class SlowFirstStore(FakeRestaurantStore):
        async def search(self, query=None, coordinate=None):
            if not self.calls:
                self.calls.append(query)
                await release_first.wait()
                return [spread[1]]
            self.calls.append(query)
            return [spread[2]]

    tracker = SearchTracker(RankingService(SlowFirstStore()))

    older = asyncio.create_task(tracker.search(query="old"))
    await asyncio.sleep(0)
    newer = await tracker.search(query="new")
    release_first.set()

    assert await older is None
    assert ids(newer) == ["one"]
    assert ids(tracker.results) == ["one"]


async def test_closed_tracker_ignores_in_flight_response(spread):
    release = asyncio.Event()

    class BlockingStore(FakeRestaurantStore):
        async def search(self, query=None, coordinate=None):
            await release.wait()
            return spread

    tracker = SearchTracker(RankingService(BlockingStore()))
    pending = asyncio.create_task(tracker.search())
    await asyncio.sleep(0)

    tracker.close()
    release.set()

    assert await pending is None
    assert tracker.results == []
    assert await tracker.search() is None

    tracker.reopen()
    release.set()
    assert ids(await tracker.search()) == ["three", "seven", "one"]
