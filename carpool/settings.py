import logging
import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv


APP_DIR_NAME = "carpool"

load_dotenv(override=False)


def _default_prefs_path() -> Path:
    base = Path(os.getenv("XDG_DATA_HOME", Path.home() / ".local" / "share"))
    return base / APP_DIR_NAME / "prefs.json"


def _resolve_redis_url() -> str:
    url = os.getenv("REDIS_URL", "").strip()
    if url:
        return url
    host = os.getenv("REDIS_HOST", "redis")
    port = os.getenv("REDIS_PORT", "6379")
    return f"redis://{host}:{port}"


@dataclass(frozen=True)
class Settings:
    MONGO_URI: str
    MONGO_DB_NAME: str
    REDIS_URL: str
    CHANGES_CHANNEL_PREFIX: str
    PREFS_PATH: str
    LOG_LEVEL: str
    PORT: int


settings = Settings(
    MONGO_URI=os.getenv("MONGO_URI", "mongodb://mongo:27017"),
    MONGO_DB_NAME=os.getenv("MONGO_DB_NAME", "carpool"),
    REDIS_URL=_resolve_redis_url(),
    CHANGES_CHANNEL_PREFIX=os.getenv("CHANGES_CHANNEL_PREFIX", "carpool").strip() or "carpool",
    PREFS_PATH=str(Path(os.getenv("PREFS_PATH", "").strip() or _default_prefs_path()).expanduser()),
    LOG_LEVEL=os.getenv("LOG_LEVEL", "INFO").strip().upper() or "INFO",
    PORT=int(os.getenv("PORT", "8000")),
)


def configure_logging(level: str | None = None) -> None:
    logging.basicConfig(
        level=level or settings.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
