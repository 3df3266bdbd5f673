import asyncio
import logging
from typing import Callable, Optional

from carpool.backend import BackendClient
from carpool.navigation import Destination, NavigationShell, Navigator
from carpool.prefs import LocalPreferences

logger = logging.getLogger(__name__)

Notify = Callable[[str], None]


class Screen:
    """A screen with its own mailbox.

    Backend callbacks never mutate a screen directly: they `post()` a handler
    and the screen's single worker task applies handlers one at a time, in
    the order they were posted. `stop()` drops anything still queued.
    """

    destination: Destination
    title = ""

    def __init__(
        self,
        backend: BackendClient,
        prefs: LocalPreferences,
        navigator: Optional[Navigator] = None,
        notify: Optional[Notify] = None,
    ):
        self.backend = backend
        self.prefs = prefs
        self.navigator = navigator
        self.shell = NavigationShell(self.destination, navigator, owner=self)
        self.notices: list[str] = []
        self.visible = False
        self._notify_cb = notify
        self._listeners: list[Callable[["Screen"], None]] = []
        self._mailbox: Optional[asyncio.Queue] = None
        self._worker: Optional[asyncio.Task] = None
        self._stopped = False

    @property
    def running(self) -> bool:
        return self._worker is not None and not self._stopped and not self._worker.done()

    # Lifecycle

    def start(self):
        if self.running:
            return
        self._stopped = False
        self._mailbox = asyncio.Queue()
        self._worker = asyncio.create_task(self._drain())
        self.on_start()

    def resume(self):
        self.shell.reset()
        self.visible = True
        self.on_resume()

    def pause(self):
        if not self.visible:
            return
        self.visible = False
        self.on_pause()

    def stop(self):
        self.pause()
        self.on_stop()
        self._stopped = True
        if self._worker is not None:
            self._worker.cancel()
        if self._mailbox is not None:
            while not self._mailbox.empty():
                self._mailbox.get_nowait()
                self._mailbox.task_done()

    def finish(self) -> bool:
        if self.navigator is not None:
            return self.navigator.finish(self)
        self.stop()
        return True

    def on_start(self):
        pass

    def on_resume(self):
        pass

    def on_pause(self):
        pass

    def on_stop(self):
        pass

    # Mailbox

    def post(self, handler: Callable, *args) -> bool:
        if not self.running:
            logger.debug("%s is stopped; dropping %s", type(self).__name__, handler.__name__)
            return False
        self._mailbox.put_nowait((handler, args))
        return True

    async def settle(self):
        """Wait until every handler posted so far has run."""
        await asyncio.sleep(0)
        if self.running:
            await self._mailbox.join()

    async def _drain(self):
        while True:
            handler, args = await self._mailbox.get()
            try:
                handler(*args)
            except Exception:
                logger.exception("%s failed in %s", type(self).__name__, handler.__name__)
            finally:
                self._mailbox.task_done()

    # Output

    def add_listener(self, callback: Callable[["Screen"], None]):
        self._listeners.append(callback)

    def changed(self):
        for callback in list(self._listeners):
            callback(self)

    def notify(self, message: str):
        self.notices.append(message)
        if self._notify_cb is not None:
            self._notify_cb(message)

    def select_destination(self, destination: Destination | str) -> bool:
        return self.shell.select(destination)

    def to_view(self) -> dict:
        return {"title": self.title}
