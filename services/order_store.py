"""
Order store client. The server owns order status; this client only
creates orders and reads them back.
"""
import logging
from typing import Any, Dict, List, Optional

from pydantic import ValidationError as ModelValidationError

from config import settings
from models import Order, OrderItem, OrderStatus
from services.errors import FetchFailed, PersistenceError
from utils.http_client import http_client

logger = logging.getLogger(__name__)

ORDERS_PATH = "/api/orders"
ORDER_STATUS_PATH = "/api/orders/{order_id}/status"


def order_to_payload(order: Order) -> Dict[str, Any]:
    return {
        "id": order.id,
        "date": order.date.isoformat(),
        "items": [item.model_dump() for item in order.items],
        "amount": order.amount,
        "status": order.status,
        "actorId": order.actor_id,
    }


def parse_order(item: Dict[str, Any]) -> Order:
    """Build an Order from a backend document."""
    return Order(
        id=str(item.get("id") or item.get("_id") or ""),
        items=[
            OrderItem(
                id=str(line.get("id") or line.get("_id") or ""),
                name=line.get("name", ""),
                price=line.get("price"),
                quantity=line.get("quantity"),
            )
            for line in item.get("items", [])
        ],
        amount=item.get("amount"),
        date=item.get("date"),
        status=item.get("status") or OrderStatus.ORDERED.value,
        actor_id=item.get("actorId"),
    )


class OrderStore:
    """Client for the order store."""

    def __init__(self, base_url: Optional[str] = None):
        self.base_url = (base_url or settings.backend_base_url).rstrip("/")

    async def create(self, order: Order) -> Order:
        """
        Persist a new order.

        Raises:
            PersistenceError: store unreachable or rejected the order
        """
        data = await http_client.post_json(
            f"{self.base_url}{ORDERS_PATH}", order_to_payload(order), error_json=True,
        )

        if not isinstance(data, dict):
            raise PersistenceError(f"Order store unreachable while saving {order.id}")

        if not data.get("success", False):
            raise PersistenceError(f"Order {order.id} rejected: {data.get('error') or 'no reason given'}")

        saved = data.get("order")
        if not saved:
            return order

        try:
            return parse_order(saved)
        except (ModelValidationError, TypeError, AttributeError) as e:
            logger.warning(f"Order {order.id} saved but response unreadable: {e}")
            return order

    async def list_by_actor(self, actor_id: str) -> List[Order]:
        """
        Fetch all orders of one actor.

        Raises:
            FetchFailed: store unreachable or returned an error
        """
        data = await http_client.get_json(f"{self.base_url}{ORDERS_PATH}", params={"actorId": actor_id})

        if not isinstance(data, dict) or not data.get("success", False):
            raise FetchFailed("Failed to load orders")

        orders = []
        for item in data.get("orders", []):
            try:
                orders.append(parse_order(item))
            except (ModelValidationError, TypeError, AttributeError) as e:
                logger.warning(f"Skipping malformed order record: {e}")

        return orders

    async def update_status(self, order_id: str, status: OrderStatus) -> None:
        """
        Request a status transition. The server rejects backward or
        non-adjacent transitions.
        """
        url = f"{self.base_url}{ORDER_STATUS_PATH.format(order_id=order_id)}"
        data = await http_client.patch_json(url, {"status": OrderStatus(status).value})

        if not isinstance(data, dict) or not data.get("success", False):
            raise PersistenceError(f"Status update to {status} rejected for {order_id}")


# Global store instance
order_store = OrderStore()
