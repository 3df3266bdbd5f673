from typing import Optional

from carpool.navigation import Destination
from carpool.screens.base import Screen


class ProfileScreen(Screen):
    destination = Destination.PROFILE
    title = "Profile"

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.user_id: Optional[str] = None
        self.user_name: Optional[str] = None

    def on_start(self):
        self.user_id = self.prefs.user_id
        self.user_name = self.prefs.user_name

    def to_view(self) -> dict:
        return {"title": self.title, "user_id": self.user_id, "user_name": self.user_name}
