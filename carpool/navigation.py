"""Bottom navigation shared by every screen."""

import logging
from enum import Enum
from typing import Protocol

logger = logging.getLogger(__name__)


class Destination(str, Enum):
    HOME = "home"
    CREATE = "create"
    MESSAGES = "messages"
    PROFILE = "profile"


class Navigator(Protocol):
    def open(self, destination: Destination): ...

    def finish(self, screen) -> bool: ...


class NavigationShell:
    """Routes a selected destination to a screen transition.

    Home stays underneath whatever it opens. Any other screen replaces itself:
    picking Home just closes it, picking anything else opens the new screen
    and then closes this one.
    """

    def __init__(self, own: Destination, navigator: Navigator | None = None, owner=None):
        self.own = own
        self.active = own
        self.navigator = navigator
        self.owner = owner

    def reset(self):
        self.active = self.own

    def select(self, requested: Destination | str) -> bool:
        requested = Destination(requested)
        if requested == self.active:
            return False
        if self.navigator is None:
            logger.warning("No navigator attached; ignoring %s -> %s", self.active.value, requested.value)
            return False

        logger.debug("Navigating %s -> %s", self.active.value, requested.value)
        if self.own is Destination.HOME:
            self.navigator.open(requested)
        elif requested is Destination.HOME:
            self.navigator.finish(self.owner)
        else:
            self.navigator.open(requested)
            self.navigator.finish(self.owner)
        self.active = requested
        return True
