"""
Data models for restaurant discovery, cart and order tracking.
"""
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class LocationMode(str, Enum):
    """How the active reference point was acquired."""
    DEVICE = "device"            # Location shared from the user's device
    MANUAL_MAP = "manual-map"    # Pin dropped on the map after arming manual pick
    TEXT_QUERY = "text-query"    # Free text, resolved by the restaurant store


class Direction(str, Enum):
    """Compass octants, clockwise from north."""
    N = "N"
    NE = "NE"
    E = "E"
    SE = "SE"
    S = "S"
    SW = "SW"
    W = "W"
    NW = "NW"


class OrderStatus(str, Enum):
    """Order lifecycle states. Only forward transitions exist."""
    ORDERED = "ordered"
    IN_PROCESS = "in-process"
    DELIVERED = "delivered"


class Coordinate(BaseModel):
    """Point on the Earth's surface in decimal degrees."""
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)

    class Config:
        frozen = True


class ReferencePoint(BaseModel):
    """
    The location currently treated as "where the user is".

    Device and manual-map points always carry a coordinate; a text-query
    point carries the raw query and leaves resolution to the restaurant store.
    """
    mode: LocationMode
    coordinate: Optional[Coordinate] = None
    query: Optional[str] = None
    timestamp: datetime = Field(default_factory=utc_now)

    class Config:
        frozen = True

    @model_validator(mode="after")
    def _check_payload(self) -> "ReferencePoint":
        if self.mode == LocationMode.TEXT_QUERY:
            if not self.query:
                raise ValueError("text-query reference point requires a query")
        elif self.coordinate is None:
            raise ValueError(f"{self.mode.value} reference point requires a coordinate")
        return self

    @property
    def has_coordinates(self) -> bool:
        return self.coordinate is not None


class Restaurant(BaseModel):
    """Restaurant record from the backend store."""
    id: str
    name: str
    cuisine: str = ""
    rating: float = Field(default=0.0, ge=0, le=5)
    price_range: str = ""
    address: str = ""
    coordinate: Coordinate
    image_url: Optional[str] = None

    class Config:
        frozen = True


class RankedRestaurant(BaseModel):
    """Restaurant annotated with query-time fields (never persisted)."""
    restaurant: Restaurant
    distance_km: Optional[float] = Field(default=None, ge=0)
    direction: Optional[Direction] = None

    class Config:
        frozen = True


class MenuItem(BaseModel):
    """Menu item of one restaurant."""
    id: str
    name: str
    price: float = Field(..., ge=0)

    class Config:
        frozen = True


class CartLine(BaseModel):
    """A menu item and how many of it are in the cart."""
    menu_item: MenuItem
    quantity: int = Field(default=1, ge=1)

    class Config:
        frozen = True

    @property
    def subtotal(self) -> float:
        return self.menu_item.price * self.quantity


class OrderItem(BaseModel):
    """Cart line as captured at checkout."""
    id: str
    name: str
    price: float = Field(..., ge=0)
    quantity: int = Field(..., ge=1)


class Order(BaseModel):
    """
    Placed order. Items and amount never change after creation;
    status is owned by the server and only moves forward.
    """
    id: str
    items: List[OrderItem]
    amount: float = Field(..., ge=0)
    date: datetime
    status: str = OrderStatus.ORDERED.value
    actor_id: Optional[str] = None

    class Config:
        frozen = True

    @field_validator("date")
    @classmethod
    def _assume_utc(cls, value: datetime) -> datetime:
        # Backend dates without an offset are UTC
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


class PaymentConfirmation(BaseModel):
    """Outcome of confirming a payment intent with the gateway."""
    success: bool
    client_secret: Optional[str] = None
    amount: Optional[float] = None
    error: Optional[str] = None


class StatusPresentation(BaseModel):
    """How an order status is shown to the user."""
    label: str
    icon: str
    affordance: str

    class Config:
        frozen = True


class SearchRequest(BaseModel):
    """Discovery filters chosen by the user."""
    category: str = "all"
    radius_km: Optional[float] = Field(default=None, gt=0)  # None = no bound
