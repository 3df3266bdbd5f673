from carpool.navigation import Destination
from carpool.screens.base import Screen


class MessagesScreen(Screen):
    """Conversations placeholder; there is no messaging backend yet."""

    destination = Destination.MESSAGES
    title = "Messages"

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.messages: list[dict] = []

    def to_view(self) -> dict:
        return {"title": self.title, "messages": list(self.messages)}
