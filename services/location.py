"""
Location acquisition: resolves the single active reference point from
device geolocation, a manual map pick or a free-text query.
"""
import asyncio
import logging
from typing import Optional

from models import Coordinate, LocationMode, ReferencePoint
from services.errors import LocationUnavailable
from services.storage import Repository

logger = logging.getLogger(__name__)

STORAGE_KEY = "reference_point"


class Geolocator:
    """
    Platform location capability.

    Implementations raise PermissionError when the user denies access and
    NotImplementedError when the platform has no location support.
    """

    async def get_current_position(self) -> Coordinate:
        raise NotImplementedError


class LocationController:
    """
    Owns the active reference point for one actor.

    Invoking any acquisition mode resets the in-memory state of the others.
    The active point is persisted under a fixed key and restored on
    construction, so a restart needs no network round trip.
    """

    def __init__(
        self,
        actor_id: str,
        repository: Repository,
        geolocation_timeout: Optional[float] = None,
    ):
        if geolocation_timeout is None:
            from config import settings
            geolocation_timeout = settings.geolocation_timeout_seconds

        self.actor_id = actor_id
        self._repository = repository
        self._key = f"{STORAGE_KEY}:{actor_id}"
        self._timeout = geolocation_timeout
        self._map_pick_armed = False
        self._device_request_pending = False
        # Bumped by every acquisition and clear; a device fix that returns
        # after a newer acquisition is dropped
        self._generation = 0

        self._active: Optional[ReferencePoint] = repository.load(self._key, ReferencePoint)
        if self._active:
            logger.info(f"Restored {self._active.mode.value} reference point for {actor_id}")

    @property
    def active(self) -> Optional[ReferencePoint]:
        return self._active

    @property
    def mode(self) -> Optional[LocationMode]:
        return self._active.mode if self._active else None

    @property
    def map_pick_armed(self) -> bool:
        return self._map_pick_armed

    @property
    def device_request_pending(self) -> bool:
        return self._device_request_pending

    def _activate(self, point: ReferencePoint) -> ReferencePoint:
        """Persist and replace the active point (last writer wins)."""
        self._repository.save(self._key, point)
        self._active = point
        logger.info(f"Reference point for {self.actor_id} set by {point.mode.value}")
        return point

    async def acquire_from_device(self, geolocator: Geolocator) -> Optional[ReferencePoint]:
        """
        Ask the platform for the current position.

        Returns:
            The new device point, or None if another acquisition (or clear)
            happened while the request was outstanding.

        Raises:
            LocationUnavailable: denied, timed out, unsupported, or a request
                is already outstanding. The previous point is left untouched.
        """
        if self._device_request_pending:
            raise LocationUnavailable(LocationUnavailable.BUSY, "Location request already in progress")

        self._map_pick_armed = False
        self._device_request_pending = True
        self._generation += 1
        generation = self._generation

        try:
            coordinate = await asyncio.wait_for(
                geolocator.get_current_position(),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(f"Device location timed out for {self.actor_id}")
            raise LocationUnavailable(LocationUnavailable.TIMEOUT)
        except PermissionError:
            logger.warning(f"Device location denied for {self.actor_id}")
            raise LocationUnavailable(LocationUnavailable.DENIED)
        except NotImplementedError:
            logger.warning(f"Device location unsupported for {self.actor_id}")
            raise LocationUnavailable(LocationUnavailable.UNSUPPORTED)
        except Exception as e:
            logger.warning(f"Device location failed for {self.actor_id}: {e}", exc_info=True)
            raise LocationUnavailable(LocationUnavailable.UNSUPPORTED, f"Location unavailable: {e}") from e
        finally:
            self._device_request_pending = False

        if generation != self._generation:
            logger.info(f"Dropping superseded device location for {self.actor_id}")
            return None

        return self._activate(ReferencePoint(mode=LocationMode.DEVICE, coordinate=coordinate))

    def arm_map_pick(self) -> None:
        """Arm single-shot manual pick: the next map interaction sets the point."""
        self._map_pick_armed = True
        logger.debug(f"Manual map pick armed for {self.actor_id}")

    def disarm_map_pick(self) -> None:
        self._map_pick_armed = False

    def handle_map_interaction(self, coordinate: Coordinate) -> Optional[ReferencePoint]:
        """
        Feed a map interaction to the controller.

        Returns the new reference point if manual pick was armed, otherwise
        None (the interaction is not a pick).
        """
        if not self._map_pick_armed:
            return None
        return self.acquire_from_map_pick(coordinate)

    def acquire_from_map_pick(self, coordinate: Coordinate) -> ReferencePoint:
        """Set the point from a map pick. Disarms manual pick."""
        self._map_pick_armed = False
        self._generation += 1
        return self._activate(ReferencePoint(mode=LocationMode.MANUAL_MAP, coordinate=coordinate))

    def acquire_from_text_query(self, text: str) -> ReferencePoint:
        """Set a text-query point carrying the raw query string."""
        query = (text or "").strip()
        if not query:
            raise ValueError("Search text is empty")

        self._map_pick_armed = False
        self._generation += 1
        return self._activate(ReferencePoint(mode=LocationMode.TEXT_QUERY, query=query))

    def clear(self) -> None:
        """Forget the active point; distance features become inactive."""
        self._generation += 1
        self._map_pick_armed = False
        self._repository.discard(self._key)
        self._active = None
        logger.info(f"Reference point cleared for {self.actor_id}")
