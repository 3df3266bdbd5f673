import logging
from typing import Callable, Optional

from carpool.backend import BackendClient
from carpool.navigation import Destination
from carpool.prefs import LocalPreferences
from carpool.screens.base import Notify, Screen
from carpool.screens.create_ride import CreateRideScreen
from carpool.screens.home import HomeScreen
from carpool.screens.messages import MessagesScreen
from carpool.screens.profile import ProfileScreen

logger = logging.getLogger(__name__)

SCREENS = {
    Destination.HOME: HomeScreen,
    Destination.CREATE: CreateRideScreen,
    Destination.MESSAGES: MessagesScreen,
    Destination.PROFILE: ProfileScreen,
}


class CarpoolApp:
    """Screen stack. Only the top screen is visible."""

    def __init__(
        self,
        backend: BackendClient,
        prefs: LocalPreferences,
        notify: Optional[Notify] = None,
        listener: Optional[Callable[[Screen], None]] = None,
    ):
        self.backend = backend
        self.prefs = prefs
        self.notify = notify
        self.listener = listener
        self.stack: list[Screen] = []

    @property
    def top(self) -> Optional[Screen]:
        return self.stack[-1] if self.stack else None

    def launch(self) -> HomeScreen:
        if self.stack:
            raise RuntimeError("App already launched")
        return self.open(Destination.HOME)

    def open(self, destination: Destination | str) -> Screen:
        screen_cls = SCREENS[Destination(destination)]
        screen = screen_cls(self.backend, self.prefs, navigator=self, notify=self.notify)
        if self.listener is not None:
            screen.add_listener(self.listener)
        if self.top is not None:
            self.top.pause()
        self.stack.append(screen)
        screen.start()
        screen.resume()
        logger.debug("Opened %s (stack depth %d)", screen.destination.value, len(self.stack))
        return screen

    def finish(self, screen: Screen) -> bool:
        if screen not in self.stack:
            return False
        if len(self.stack) == 1:
            logger.debug("Refusing to close the last screen")
            return False

        was_top = screen is self.top
        self.stack.remove(screen)
        screen.stop()
        if was_top:
            self.top.resume()
        return True

    def shutdown(self):
        while self.stack:
            self.stack.pop().stop()
