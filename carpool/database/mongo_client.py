from pymongo import MongoClient
from pymongo.database import Database

from carpool.settings import settings

RIDES_COLLECTION = "rides"
BOOKINGS_COLLECTION = "bookings"

_client: MongoClient | None = None


def get_db() -> Database:
    global _client
    if _client is None:
        _client = MongoClient(settings.MONGO_URI)
    return _client[settings.MONGO_DB_NAME]


def close_db():
    global _client
    if _client is not None:
        _client.close()
        _client = None
