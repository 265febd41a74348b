from .errors import (
    TomatoError,
    LocationUnavailable,
    FetchFailed,
    ValidationError,
    PaymentNotConfirmed,
    PersistenceError,
)
from .geometry import distance_km, bearing_octant
from .storage import Repository, SQLiteStorage, MemoryStorage, client_storage
from .location import Geolocator, LocationController
from .restaurant_store import RestaurantStore, restaurant_store
from .ranking import RankingService, SearchTracker, rank_restaurants, policy_from_settings
from .cart import Cart
from .payments import PaymentGateway, payment_gateway
from .order_store import OrderStore, order_store
from .orders import OrderLifecycleManager, OrderStatusPoller, StatusTracker, present_status
from .sessions import ActorSession, SessionRegistry

# Global service instances
ranking_service = RankingService(restaurant_store, new_arrivals=policy_from_settings())
order_manager = OrderLifecycleManager(order_store)
sessions = SessionRegistry(client_storage, ranking_service)

__all__ = [
    # Errors
    "TomatoError",
    "LocationUnavailable",
    "FetchFailed",
    "ValidationError",
    "PaymentNotConfirmed",
    "PersistenceError",
    # Discovery
    "distance_km",
    "bearing_octant",
    "Geolocator",
    "LocationController",
    "RestaurantStore",
    "restaurant_store",
    "RankingService",
    "SearchTracker",
    "rank_restaurants",
    "ranking_service",
    # Cart and orders
    "Cart",
    "PaymentGateway",
    "payment_gateway",
    "OrderStore",
    "order_store",
    "OrderLifecycleManager",
    "OrderStatusPoller",
    "StatusTracker",
    "present_status",
    "order_manager",
    # Client state
    "Repository",
    "SQLiteStorage",
    "MemoryStorage",
    "client_storage",
    "ActorSession",
    "SessionRegistry",
    "sessions",
]
