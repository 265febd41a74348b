"""
Per-chat session state: reference point, cart, discovery view and
order tracking view of one actor.
"""
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from config import settings
from models import MenuItem, Restaurant, SearchRequest
from services.cart import Cart
from services.location import LocationController
from services.orders import OrderLifecycleManager, OrderStatusPoller, OrdersCallback
from services.ranking import RankingService, SearchTracker, parse_radius
from services.storage import Repository

logger = logging.getLogger(__name__)


@dataclass
class ActorSession:
    """Everything the bot keeps for one chat."""
    actor_id: str
    location: LocationController
    cart: Cart
    discovery: SearchTracker
    filters: SearchRequest = field(default_factory=SearchRequest)
    restaurant: Optional[Restaurant] = None
    menu: Dict[str, MenuItem] = field(default_factory=dict)
    menu_sort: str = "none"
    poller: Optional[OrderStatusPoller] = None

    def open_menu(self, restaurant: Restaurant, items: List[MenuItem]) -> None:
        self.restaurant = restaurant
        self.menu = {item.id: item for item in items}
        self.menu_sort = "none"

    async def start_tracking(self, manager: OrderLifecycleManager, on_update: OrdersCallback) -> OrderStatusPoller:
        """Open the tracking view, replacing any previous one."""
        await self.stop_tracking()
        self.poller = OrderStatusPoller(manager, self.actor_id, on_update)
        self.poller.start()
        return self.poller

    async def stop_tracking(self) -> None:
        """Tear down the tracking view."""
        poller, self.poller = self.poller, None
        if poller is not None:
            await poller.stop()

    async def close(self) -> None:
        self.discovery.close()
        await self.stop_tracking()


class SessionRegistry:
    """Lazily creates sessions; state is restored from client storage."""

    def __init__(self, repository: Repository, ranking: RankingService):
        self._repository = repository
        self._ranking = ranking
        self._sessions: Dict[str, ActorSession] = {}

    def get(self, actor_id) -> ActorSession:
        actor_id = str(actor_id)
        session = self._sessions.get(actor_id)
        if session is None:
            session = ActorSession(
                actor_id=actor_id,
                location=LocationController(actor_id, self._repository),
                cart=Cart(actor_id, self._repository),
                discovery=SearchTracker(self._ranking),
                filters=SearchRequest(radius_km=parse_radius(settings.default_radius_km)),
            )
            self._sessions[actor_id] = session
            logger.debug(f"Session created for {actor_id}")
        return session

    async def close_all(self) -> None:
        for session in self._sessions.values():
            await session.close()
        self._sessions.clear()
        logger.info("All sessions closed")
