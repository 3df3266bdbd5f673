import json
from pathlib import Path
from typing import Any, Optional

from carpool.settings import settings


class LocalPreferences:
    """Read-only view of the signed-in user's local preferences."""

    USER_ID_KEY = "userId"
    USER_NAME_KEY = "userName"

    def __init__(self, file_path: Path | str | None = None):
        self.file_path = Path(file_path or settings.PREFS_PATH)

    def load(self) -> dict[str, Any]:
        if not self.file_path.exists():
            return {}

        raw = self.file_path.read_text(encoding="utf-8").strip()
        if not raw:
            return {}

        data = json.loads(raw)
        if not isinstance(data, dict):
            raise ValueError("Invalid preferences format: expected object")
        return data

    def _get(self, key: str) -> Optional[str]:
        value = self.load().get(key)
        if value is None:
            return None
        value = str(value).strip()
        return value or None

    @property
    def user_id(self) -> Optional[str]:
        return self._get(self.USER_ID_KEY)

    @property
    def user_name(self) -> Optional[str]:
        return self._get(self.USER_NAME_KEY)
