"""
Restaurant ranking: annotate, filter and order search results around
the active reference point.

Pipeline order is fixed: annotate -> radius filter -> category filter -> sort.
Later stages read the distance fields that annotation populates.
"""
import logging
from typing import Iterable, List, Optional, Union

from config import settings
from models import MenuItem, RankedRestaurant, ReferencePoint, Restaurant
from services.errors import FetchFailed
from services.geometry import bearing_octant, distance_km
from services.restaurant_store import RestaurantStore
from utils.text_utils import contains_text, normalize_text

logger = logging.getLogger(__name__)

CATEGORY_ALL = "all"
CATEGORY_POPULAR = "popular"
CATEGORY_NEW = "new"

RADIUS_ALL = "all"

MENU_SORT_NONE = "none"
MENU_SORT_LOW_TO_HIGH = "low_to_high"
MENU_SORT_HIGH_TO_LOW = "high_to_low"

Radius = Union[str, float, None]


# --- "New arrivals" policies ---

class NewArrivalsPolicy:
    """Decides which restaurants count as new arrivals."""

    def select(self, ranked: List[RankedRestaurant]) -> List[RankedRestaurant]:
        raise NotImplementedError


class LastNPolicy(NewArrivalsPolicy):
    """The last N records in store order, i.e. the most recently added."""

    def __init__(self, count: int = 5):
        if count < 0:
            raise ValueError("count must be >= 0")
        self.count = count

    def select(self, ranked: List[RankedRestaurant]) -> List[RankedRestaurant]:
        if self.count == 0:
            return []
        recent_ids = {r.restaurant.id for r in ranked[-self.count:]}
        # Keep the incoming order; only membership is decided here
        return [r for r in ranked if r.restaurant.id in recent_ids]


class IdPrefixPolicy(NewArrivalsPolicy):
    """Records whose id starts with a marker prefix."""

    def __init__(self, prefix: str = "res"):
        self.prefix = prefix

    def select(self, ranked: List[RankedRestaurant]) -> List[RankedRestaurant]:
        return [r for r in ranked if r.restaurant.id.startswith(self.prefix)]


def policy_from_settings() -> NewArrivalsPolicy:
    if settings.new_arrivals_policy == "id_prefix":
        return IdPrefixPolicy(settings.new_arrivals_id_prefix)
    return LastNPolicy(settings.new_arrivals_count)


# --- Pipeline stages ---

def parse_radius(value: Radius) -> Optional[float]:
    """
    Normalize a radius option to a km bound, None meaning unbounded.

    Raises:
        ValueError: not "all" and not a positive number
    """
    if value is None:
        return None
    if isinstance(value, str):
        if value.strip().lower() == RADIUS_ALL:
            return None
        value = float(value)
    if value <= 0:
        raise ValueError(f"Radius must be positive, got {value}")
    return float(value)


def dedupe(restaurants: Iterable[Restaurant]) -> List[Restaurant]:
    """Drop repeated ids, keeping the first occurrence."""
    seen_ids = set()
    unique = []
    for restaurant in restaurants:
        if restaurant.id in seen_ids:
            continue
        seen_ids.add(restaurant.id)
        unique.append(restaurant)
    return unique


def annotate(
    restaurants: Iterable[Restaurant],
    reference: Optional[ReferencePoint],
) -> List[RankedRestaurant]:
    """Attach distance and direction when the reference point has coordinates."""
    if reference is None or not reference.has_coordinates:
        return [RankedRestaurant(restaurant=r) for r in restaurants]

    origin = reference.coordinate
    return [
        RankedRestaurant(
            restaurant=r,
            distance_km=distance_km(origin, r.coordinate),
            direction=bearing_octant(origin, r.coordinate),
        )
        for r in restaurants
    ]


def filter_by_radius(ranked: List[RankedRestaurant], radius_km: Optional[float]) -> List[RankedRestaurant]:
    """Drop results farther than radius_km. No-op for unannotated results."""
    if radius_km is None:
        return ranked
    return [r for r in ranked if r.distance_km is None or r.distance_km <= radius_km]


def filter_by_category(
    ranked: List[RankedRestaurant],
    category: Optional[str],
    new_arrivals: Optional[NewArrivalsPolicy] = None,
    popular_min_rating: Optional[float] = None,
) -> List[RankedRestaurant]:
    """
    Apply a category filter.

    - all: pass-through
    - popular: rating >= popular_min_rating
    - new: delegated to the new-arrivals policy
    - anything else: case-insensitive substring of the cuisine
    """
    category = normalize_text(category or CATEGORY_ALL)

    if category == CATEGORY_ALL:
        return ranked

    if category == CATEGORY_POPULAR:
        threshold = settings.popular_min_rating if popular_min_rating is None else popular_min_rating
        return [r for r in ranked if r.restaurant.rating >= threshold]

    if category == CATEGORY_NEW:
        return (new_arrivals or policy_from_settings()).select(ranked)

    return [r for r in ranked if contains_text(r.restaurant.cuisine, category)]


def sort_by_distance(ranked: List[RankedRestaurant]) -> List[RankedRestaurant]:
    """Nearest first. Results without a distance keep their order, after the rest."""
    if not any(r.distance_km is not None for r in ranked):
        return ranked
    return sorted(ranked, key=lambda r: (r.distance_km is None, r.distance_km or 0.0))


def rank_restaurants(
    candidates: Iterable[Restaurant],
    reference: Optional[ReferencePoint] = None,
    category: Optional[str] = CATEGORY_ALL,
    radius: Radius = RADIUS_ALL,
    new_arrivals: Optional[NewArrivalsPolicy] = None,
    popular_min_rating: Optional[float] = None,
) -> List[RankedRestaurant]:
    """
    Run the full ranking pipeline over a candidate set.

    With no reference point, no category and no radius the candidates come
    back in store order, unmodified apart from de-duplication.
    """
    radius_km = parse_radius(radius)

    ranked = annotate(dedupe(candidates), reference)
    ranked = filter_by_radius(ranked, radius_km)
    ranked = filter_by_category(ranked, category, new_arrivals, popular_min_rating)

    if reference is not None and reference.has_coordinates:
        ranked = sort_by_distance(ranked)

    return ranked


# --- Presentation helpers ---

def top_rated(restaurants: Iterable[Restaurant], limit: int = 4) -> List[Restaurant]:
    """Highest rated first; ties keep store order."""
    return sorted(restaurants, key=lambda r: r.rating, reverse=True)[:limit]


def sort_menu(items: Iterable[MenuItem], order: str = MENU_SORT_NONE) -> List[MenuItem]:
    """Order a menu by price. Unknown orders keep the store order."""
    items = list(items)
    if order == MENU_SORT_LOW_TO_HIGH:
        return sorted(items, key=lambda item: item.price)
    if order == MENU_SORT_HIGH_TO_LOW:
        return sorted(items, key=lambda item: item.price, reverse=True)
    return items


class RankingService:
    """Fetches candidates from the restaurant store and ranks them."""

    def __init__(self, store: RestaurantStore, new_arrivals: Optional[NewArrivalsPolicy] = None):
        self.store = store
        self.new_arrivals = new_arrivals

    async def search(
        self,
        reference: Optional[ReferencePoint] = None,
        query: Optional[str] = None,
        category: Optional[str] = CATEGORY_ALL,
        radius: Radius = RADIUS_ALL,
    ) -> List[RankedRestaurant]:
        """
        Fetch and rank restaurants.

        A text-query reference point supplies the query when none is given.
        The store is asked by text when there is a query, otherwise by
        coordinates. No retry here; FetchFailed propagates to the caller.
        """
        if not query and reference is not None and reference.query:
            query = reference.query

        coordinate = None
        if not query and reference is not None and reference.has_coordinates:
            coordinate = reference.coordinate

        candidates = await self.store.search(query=query, coordinate=coordinate)

        ranked = rank_restaurants(
            candidates,
            reference=reference,
            category=category,
            radius=radius,
            new_arrivals=self.new_arrivals,
        )
        logger.info(
            f"Ranked {len(ranked)} of {len(candidates)} restaurants "
            f"(category={category}, radius={radius})"
        )
        return ranked


class SearchTracker:
    """
    Tracks searches issued from one discovery view.

    A newer search supersedes an older one without cancelling it; responses
    that arrive for superseded searches, or after the view is closed, are
    discarded. A failed search leaves the previous results in place.
    """

    def __init__(self, service: RankingService):
        self._service = service
        self._latest_request = 0
        self._closed = False
        self.results: List[RankedRestaurant] = []

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def latest_request(self) -> int:
        return self._latest_request

    async def search(self, **kwargs) -> Optional[List[RankedRestaurant]]:
        """
        Run a search for this view.

        Returns:
            The new results, or None if the response was stale or the view
            was closed in the meantime.

        Raises:
            FetchFailed: only for the latest request of an open view
        """
        if self._closed:
            return None

        self._latest_request += 1
        request_id = self._latest_request

        try:
            results = await self._service.search(**kwargs)
        except FetchFailed:
            if self._is_stale(request_id):
                logger.debug(f"Ignoring failure of superseded search #{request_id}")
                return None
            raise

        if self._is_stale(request_id):
            logger.debug(f"Discarding stale search #{request_id}")
            return None

        self.results = results
        return results

    def _is_stale(self, request_id: int) -> bool:
        return self._closed or request_id != self._latest_request

    def reopen(self) -> None:
        self._closed = False

    def close(self) -> None:
        """Tear down the view: in-flight responses become inert."""
        self._closed = True
