from .schemas import (
    Coordinate,
    LocationMode,
    ReferencePoint,
    Direction,
    Restaurant,
    RankedRestaurant,
    MenuItem,
    CartLine,
    OrderItem,
    Order,
    OrderStatus,
    PaymentConfirmation,
    StatusPresentation,
    SearchRequest,
)

__all__ = [
    "Coordinate",
    "LocationMode",
    "ReferencePoint",
    "Direction",
    "Restaurant",
    "RankedRestaurant",
    "MenuItem",
    "CartLine",
    "OrderItem",
    "Order",
    "OrderStatus",
    "PaymentConfirmation",
    "StatusPresentation",
    "SearchRequest",
]
