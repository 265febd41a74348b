"""
Cart aggregate: menu items and quantities for one actor's shopping session.

Every mutation is written to client storage before it returns, so a restart
never loses cart contents.
"""
import logging
from typing import Dict, List, Optional

from models import CartLine, MenuItem
from services.storage import Repository

logger = logging.getLogger(__name__)

STORAGE_KEY = "cart"


class Cart:
    """Insertion-ordered mapping of menu item id -> CartLine."""

    def __init__(self, actor_id: str, repository: Repository):
        self.actor_id = actor_id
        self._repository = repository
        self._key = f"{STORAGE_KEY}:{actor_id}"
        self._lines: Dict[str, CartLine] = {
            line.menu_item.id: line
            for line in repository.load_list(self._key, CartLine)
        }

    def __len__(self) -> int:
        return len(self._lines)

    def __contains__(self, item_id: str) -> bool:
        return item_id in self._lines

    @property
    def lines(self) -> List[CartLine]:
        return list(self._lines.values())

    @property
    def is_empty(self) -> bool:
        return not self._lines

    @property
    def item_count(self) -> int:
        """Total number of units across all lines."""
        return sum(line.quantity for line in self._lines.values())

    def get(self, item_id: str) -> Optional[CartLine]:
        return self._lines.get(item_id)

    def _commit(self, lines: Dict[str, CartLine]) -> None:
        """Persist the new lines, then make them current. A failed save changes nothing."""
        self._repository.save(self._key, list(lines.values()))
        self._lines = lines

    def _set_quantity(self, item_id: str, quantity: int) -> Optional[CartLine]:
        line = self._lines.get(item_id)
        if line is None:
            logger.debug(f"Cart {self.actor_id}: no line for {item_id}")
            return None
        line = line.model_copy(update={"quantity": quantity})
        self._commit({**self._lines, item_id: line})
        return line

    def add(self, item: MenuItem) -> CartLine:
        """Add one unit of item, creating the line if needed."""
        line = self._lines.get(item.id)
        if line is not None:
            return self._set_quantity(item.id, line.quantity + 1)

        line = CartLine(menu_item=item, quantity=1)
        self._commit({**self._lines, item.id: line})
        logger.debug(f"Cart {self.actor_id}: added {item.name}")
        return line

    def increase(self, item_id: str) -> Optional[CartLine]:
        line = self._lines.get(item_id)
        if line is None:
            return None
        return self._set_quantity(item_id, line.quantity + 1)

    def decrease(self, item_id: str) -> Optional[CartLine]:
        """Remove one unit, never going below 1. Use remove() to delete the line."""
        line = self._lines.get(item_id)
        if line is None:
            return None
        return self._set_quantity(item_id, max(1, line.quantity - 1))

    def remove(self, item_id: str) -> bool:
        if item_id not in self._lines:
            return False
        self._commit({key: line for key, line in self._lines.items() if key != item_id})
        return True

    def total(self) -> float:
        """Sum of price x quantity over the current lines."""
        return sum((line.subtotal for line in self._lines.values()), 0.0)

    def clear(self) -> None:
        """Drop the stored cart first; memory is emptied only once that succeeded."""
        self._repository.discard(self._key)
        self._lines = {}
        logger.info(f"Cart {self.actor_id} cleared")
