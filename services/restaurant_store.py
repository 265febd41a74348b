"""
Backend API integration for restaurant search and menus.
"""
import logging
from typing import Any, Dict, List, Optional

from pydantic import ValidationError as ModelValidationError

from config import settings
from models import Coordinate, MenuItem, Restaurant
from services.errors import FetchFailed
from utils.http_client import http_client

logger = logging.getLogger(__name__)

# Backend API paths
RESTAURANTS_SEARCH_PATH = "/api/restaurants/nearby"
RESTAURANT_PATH = "/api/restaurants/{restaurant_id}"
RESTAURANT_MENU_PATH = "/api/restaurants/{restaurant_id}/menu"


def parse_restaurant(item: Dict[str, Any]) -> Restaurant:
    """Build a Restaurant from a backend document."""
    return Restaurant(
        id=str(item.get("_id") or item.get("id") or ""),
        name=item.get("name") or "Unnamed",
        cuisine=item.get("cuisine", ""),
        rating=item.get("rating", 0.0),
        price_range=item.get("priceRange", ""),
        address=item.get("address", ""),
        coordinate=Coordinate(
            latitude=item.get("latitude"),
            longitude=item.get("longitude"),
        ),
        image_url=item.get("imageUrl") or item.get("img") or None,
    )


def parse_menu_item(item: Dict[str, Any]) -> MenuItem:
    """Build a MenuItem from a backend document."""
    return MenuItem(
        id=str(item.get("_id") or item.get("id") or ""),
        name=item.get("name", ""),
        price=item.get("price"),
    )


class RestaurantStore:
    """Client for the restaurant store. Read-only."""

    def __init__(self, base_url: Optional[str] = None):
        self.base_url = (base_url or settings.backend_base_url).rstrip("/")

    async def search(
        self,
        query: Optional[str] = None,
        coordinate: Optional[Coordinate] = None,
    ) -> List[Restaurant]:
        """
        Search restaurants by free text or around coordinates.

        Args:
            query: Substring matched against name, cuisine and address
            coordinate: Center of a proximity search

        Returns:
            List of Restaurant objects in store order

        Raises:
            FetchFailed: backend unreachable or returned an error
        """
        params = {"q": query or None}
        if coordinate is not None:
            params["lat"] = coordinate.latitude
            params["lon"] = coordinate.longitude

        logger.info(f"Searching restaurants: q={query!r} at={coordinate}")

        data = await http_client.get_json(f"{self.base_url}{RESTAURANTS_SEARCH_PATH}", params=params)

        if data is None:
            raise FetchFailed("Failed to fetch restaurants")

        items = data if isinstance(data, list) else data.get("restaurants", [])

        restaurants = []

        for item in items:
            try:
                restaurant = parse_restaurant(item)
            except (ModelValidationError, TypeError, AttributeError) as e:
                logger.warning(f"Skipping malformed restaurant record: {e}")
                continue

            restaurants.append(restaurant)

        logger.info(f"Found {len(restaurants)} restaurants")
        return restaurants

    async def get_restaurant(self, restaurant_id: str) -> Restaurant:
        """Fetch one restaurant by id."""
        url = f"{self.base_url}{RESTAURANT_PATH.format(restaurant_id=restaurant_id)}"
        data = await http_client.get_json(url)

        if not data:
            raise FetchFailed(f"Failed to fetch restaurant {restaurant_id}")

        try:
            return parse_restaurant(data)
        except (ModelValidationError, TypeError, AttributeError) as e:
            raise FetchFailed(f"Malformed restaurant {restaurant_id}: {e}") from e

    async def get_menu(self, restaurant_id: str) -> List[MenuItem]:
        """
        Fetch the menu of one restaurant.

        Items without a usable price are skipped; they cannot be added to a cart.
        """
        url = f"{self.base_url}{RESTAURANT_MENU_PATH.format(restaurant_id=restaurant_id)}"
        data = await http_client.get_json(url)

        if data is None:
            raise FetchFailed(f"Failed to fetch menu for {restaurant_id}")

        items = data.get("menu", []) if isinstance(data, dict) else data

        menu = []
        for item in items:
            try:
                menu.append(parse_menu_item(item))
            except (ModelValidationError, TypeError, AttributeError) as e:
                logger.warning(f"Skipping malformed menu item in {restaurant_id}: {e}")

        logger.info(f"Loaded {len(menu)} menu items for {restaurant_id}")
        return menu


# Global store instance
restaurant_store = RestaurantStore()
