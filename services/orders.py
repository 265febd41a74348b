"""
Order lifecycle: checkout snapshot, order listing and status polling.

Status flow (server-authoritative, forward only):
    ordered -> in-process -> delivered
"""
import asyncio
import logging
import uuid
from datetime import datetime
from typing import Awaitable, Callable, Dict, List, Optional

from models import (
    Order,
    OrderItem,
    OrderStatus,
    PaymentConfirmation,
    StatusPresentation,
)
from models.schemas import utc_now
from services.cart import Cart
from services.errors import (
    FetchFailed,
    PaymentNotConfirmed,
    PersistenceError,
    ValidationError,
)
from services.order_store import OrderStore

logger = logging.getLogger(__name__)

STATUS_FLOW = (OrderStatus.ORDERED, OrderStatus.IN_PROCESS, OrderStatus.DELIVERED)
TERMINAL_STATUSES = {OrderStatus.DELIVERED}

# Half a cent: amounts closer than this are the same amount
AMOUNT_TOLERANCE = 0.005


# --- Status helpers ---

def parse_status(value) -> Optional[OrderStatus]:
    """OrderStatus for a raw value, or None if it is not a known status."""
    try:
        return OrderStatus(value)
    except ValueError:
        return None


def status_rank(value) -> int:
    """Position in the status flow; -1 for unknown statuses."""
    status = parse_status(value)
    return STATUS_FLOW.index(status) if status else -1


def is_terminal(value) -> bool:
    return parse_status(value) in TERMINAL_STATUSES


STATUS_PRESENTATION: Dict[OrderStatus, StatusPresentation] = {
    OrderStatus.ORDERED: StatusPresentation(label="Ordered", icon="🧾", affordance="track"),
    OrderStatus.IN_PROCESS: StatusPresentation(label="In process", icon="👨‍🍳", affordance="track"),
    OrderStatus.DELIVERED: StatusPresentation(label="Delivered", icon="✅", affordance="reorder"),
}

UNKNOWN_PRESENTATION = StatusPresentation(label="Unknown", icon="❔", affordance="none")


def present_status(value) -> StatusPresentation:
    """Label, icon and affordance for a status. Never raises."""
    status = parse_status(value)
    if status is None:
        return UNKNOWN_PRESENTATION
    return STATUS_PRESENTATION.get(status, UNKNOWN_PRESENTATION)


# --- Lifecycle manager ---

class OrderLifecycleManager:
    """Turns a paid cart into a persisted order and reads orders back."""

    def __init__(self, store: OrderStore, clock: Callable[[], datetime] = utc_now):
        self.store = store
        self._clock = clock

    def snapshot(self, cart: Cart, confirmation: Optional[PaymentConfirmation]) -> Order:
        """
        Validate checkout preconditions and build the immutable order.

        Raises:
            ValidationError: empty cart, unpriced line, or amount mismatch
            PaymentNotConfirmed: payment missing or unsuccessful
        """
        if cart.is_empty:
            raise ValidationError("Cart is empty")

        items = []
        for line in cart.lines:
            if line.menu_item.price is None or line.quantity < 1:
                raise ValidationError(f"Missing price or quantity for {line.menu_item.name}")
            items.append(OrderItem(
                id=line.menu_item.id,
                name=line.menu_item.name,
                price=line.menu_item.price,
                quantity=line.quantity,
            ))

        if confirmation is None or not confirmation.success:
            reason = confirmation.error if confirmation and confirmation.error else "payment not confirmed"
            raise PaymentNotConfirmed(reason)

        amount = round(cart.total(), 2)

        if confirmation.amount is not None and abs(confirmation.amount - amount) >= AMOUNT_TOLERANCE:
            raise ValidationError(
                f"Paid amount {confirmation.amount:.2f} does not match cart total {amount:.2f}"
            )

        return Order(
            id=uuid.uuid4().hex,
            items=items,
            amount=amount,
            date=self._clock(),
            status=OrderStatus.ORDERED.value,
            actor_id=cart.actor_id,
        )

    async def checkout(self, cart: Cart, confirmation: Optional[PaymentConfirmation]) -> Order:
        """
        Persist the cart as an order, then clear the cart.

        The cart is cleared only after the store accepted the order; on any
        error it is left untouched so checkout can be retried.
        """
        order = self.snapshot(cart, confirmation)

        try:
            persisted = await self.store.create(order)
        except PersistenceError as e:
            logger.warning(f"Checkout failed for {cart.actor_id}: {e}")
            raise

        try:
            cart.clear()
        except PersistenceError as e:
            # The order exists; failing here would invite a duplicate checkout
            logger.error(f"Order {persisted.id} saved but cart {cart.actor_id} not cleared: {e}", exc_info=True)

        logger.info(f"Order {persisted.id} created for {cart.actor_id}: {persisted.amount:.2f}")
        return persisted

    async def list_orders(self, actor_id: str) -> List[Order]:
        """All orders of the actor, newest first."""
        orders = await self.store.list_by_actor(actor_id)
        return sorted(orders, key=lambda o: o.date, reverse=True)


# --- Status synchronization ---

class StatusTracker:
    """
    Client view of order statuses across polls.

    A status never moves backward and a terminal status is never replaced,
    whatever a later poll returns.
    """

    def __init__(self):
        self._seen: Dict[str, Order] = {}

    def status_of(self, order_id: str) -> Optional[str]:
        order = self._seen.get(order_id)
        return order.status if order else None

    def merge(self, orders: List[Order]) -> List[Order]:
        merged = []
        for order in orders:
            previous = self._seen.get(order.id)
            if previous is not None and (
                is_terminal(previous.status)
                or status_rank(order.status) < status_rank(previous.status)
            ):
                if order.status != previous.status:
                    logger.warning(
                        f"Ignoring status {order.status} for {order.id}, already {previous.status}"
                    )
                order = order.model_copy(update={"status": previous.status})

            self._seen[order.id] = order
            merged.append(order)
        return merged


OrdersCallback = Callable[[List[Order]], Awaitable[None]]


class OrderStatusPoller:
    """
    Re-fetches the actor's orders on a fixed interval while a tracking
    view is open. Ticks never overlap; stop() cancels the timer and makes
    a response still in flight inert.
    """

    def __init__(
        self,
        manager: OrderLifecycleManager,
        actor_id: str,
        on_update: OrdersCallback,
        interval_seconds: Optional[float] = None,
        tracker: Optional[StatusTracker] = None,
    ):
        if interval_seconds is None:
            from config import settings
            interval_seconds = settings.status_poll_interval_seconds

        self.manager = manager
        self.actor_id = actor_id
        self.interval_seconds = interval_seconds
        self.tracker = tracker or StatusTracker()
        self._on_update = on_update
        self._task: Optional[asyncio.Task] = None
        self._in_flight = False
        self._stopped = False

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start polling. No-op if already running."""
        if self.running:
            return
        self._stopped = False
        self._task = asyncio.create_task(self._run())
        logger.info(f"Status polling started for {self.actor_id} every {self.interval_seconds}s")

    async def stop(self) -> None:
        """Stop polling and wait for the timer task to finish."""
        self._stopped = True
        task, self._task = self._task, None
        if task is not None:
            task.cancel()
            if task is asyncio.current_task():
                return
            await asyncio.gather(task, return_exceptions=True)
            logger.info(f"Status polling stopped for {self.actor_id}")

    async def _run(self) -> None:
        while not self._stopped:
            await self.poll_once()
            await asyncio.sleep(self.interval_seconds)

    async def poll_once(self) -> Optional[List[Order]]:
        """
        One synchronization tick.

        Returns:
            Merged order list, or None if the tick was skipped (previous tick
            still in flight, fetch failed, or the poller was stopped).
        """
        if self._in_flight:
            logger.debug(f"Skipping poll for {self.actor_id}: previous tick in flight")
            return None

        self._in_flight = True
        try:
            orders = await self.manager.list_orders(self.actor_id)
        except FetchFailed as e:
            logger.warning(f"Status poll failed for {self.actor_id}: {e}")
            return None
        finally:
            self._in_flight = False

        if self._stopped:
            return None

        merged = self.tracker.merge(orders)

        try:
            await self._on_update(merged)
        except Exception as e:
            logger.error(f"Status update callback failed for {self.actor_id}: {e}", exc_info=True)

        return merged
