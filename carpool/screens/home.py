import asyncio
import logging
from typing import Optional

from pydantic import ValidationError

from carpool.backend import Subscription
from carpool.errors import BackendError, SyncFailed
from carpool.models.ride_model import Booking, Role
from carpool.navigation import Destination
from carpool.screens.base import Screen

logger = logging.getLogger(__name__)

SECTION_TITLES = {
    Role.RIDER: "Your Bookings",
    Role.DRIVER: "Your Listings",
}


class HomeScreen(Screen):
    """Live list of the user's bookings, as rider or as driver.

    Every opened live query gets the next generation number. Deliveries are
    applied only while their generation is still current, so a role switch
    can never be overwritten by results of the previous filter.
    """

    destination = Destination.HOME
    title = "Home"

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.role = Role.RIDER
        self.user_name: Optional[str] = None
        self.bookings: list[Booking] = []
        self.generation = 0
        self.error: Optional[SyncFailed] = None
        self._subscription: Optional[Subscription] = None
        self._loaded = asyncio.Event()

    @property
    def is_empty(self) -> bool:
        return not self.bookings

    @property
    def loading(self) -> bool:
        return not self._loaded.is_set()

    @property
    def section_title(self) -> str:
        return SECTION_TITLES[self.role]

    @property
    def subscribed(self) -> bool:
        return self._subscription is not None and not self._subscription.closed

    def on_start(self):
        self.user_name = self.prefs.user_name

    def on_resume(self):
        self.load_bookings()

    def on_pause(self):
        self._release()

    def on_stop(self):
        self._release()

    def switch_role(self, role: Role | str) -> bool:
        role = Role(role)
        if role is self.role:
            return False
        self.role = role
        if self.visible:
            self.load_bookings()
        else:
            self.changed()
        return True

    def load_bookings(self):
        self._release()
        self.generation += 1
        self.bookings = []
        self.error = None
        self._loaded.clear()

        user_id = self.prefs.user_id
        if user_id is None:
            logger.info("No signed-in user; booking list stays empty")
            self._loaded.set()
            self.changed()
            return

        generation = self.generation
        self._subscription = self.backend.bookings.subscribe(
            self.role.filter_field,
            user_id,
            on_snapshot=lambda docs: self.post(self._apply_snapshot, generation, docs),
            on_error=lambda e: self.post(self._apply_error, generation, e),
        )
        logger.info("Watching bookings where %s=%s (generation %d)", self.role.filter_field, user_id, generation)

    async def wait_loaded(self):
        """Wait for the first delivery (or error) of the current live query."""
        await self._loaded.wait()
        await self.settle()

    def select_booking(self, booking: Booking):
        self.notify("Booking details coming soon")

    def open_search(self):
        self.notify("Search feature coming soon")

    def _release(self):
        if self._subscription is not None:
            self._subscription.close()
            self._subscription = None

    def _apply_snapshot(self, generation: int, docs: list[dict]):
        if generation != self.generation:
            logger.debug("Dropped stale delivery from generation %d", generation)
            return

        bookings = []
        for doc in docs:
            try:
                bookings.append(Booking.from_document(doc))
            except ValidationError as e:
                logger.warning("Skipping malformed booking %s: %s", doc.get("_id"), e)
        self.bookings = bookings
        self._loaded.set()
        self.changed()

    def _apply_error(self, generation: int, error: BackendError):
        if generation != self.generation:
            return
        logger.warning("Booking sync failed: %s", error)
        self._release()
        self.error = SyncFailed("Failed to load bookings")
        self._loaded.set()
        self.notify(self.error.message)
        self.changed()
