"""Client for the realtime database service.

Documents are kept in MongoDB. Every writer publishes the collection name on
the collection's Redis changes channel, and every live query re-runs its
filtered find when a notice arrives, so subscribers always receive the full
matching result set rather than a diff.
"""

import asyncio
import logging
from typing import Any, Callable

from bson import ObjectId
from bson.errors import InvalidDocument
from pymongo.database import Database
from pymongo.errors import PyMongoError
from redis import asyncio as redis_async
from redis.exceptions import RedisError

from carpool.database.mongo_client import BOOKINGS_COLLECTION, RIDES_COLLECTION
from carpool.database.redis_client import changes_channel, publish_change
from carpool.errors import BackendError

logger = logging.getLogger(__name__)

SnapshotCallback = Callable[[list[dict]], Any]
ErrorCallback = Callable[[BackendError], Any]


class Subscription:
    """Handle for a live query. `close()` stops deliveries; calling it twice is fine."""

    def __init__(self, task: asyncio.Task, description: str):
        self._task = task
        self.description = description

    @property
    def closed(self) -> bool:
        return self._task.done()

    def close(self):
        if not self._task.done():
            self._task.cancel()
            logger.debug("Closed live query %s", self.description)


class CollectionRef:
    def __init__(self, backend: "BackendClient", name: str):
        self._backend = backend
        self.name = name

    @property
    def _collection(self):
        return self._backend.db[self.name]

    def generate_id(self) -> str:
        # ObjectIds sort by creation time, like the backend's push keys.
        return str(ObjectId())

    async def set_value(self, key: str, document: dict) -> None:
        doc = {**document, "_id": key}
        try:
            await asyncio.to_thread(self._collection.replace_one, {"_id": key}, doc, upsert=True)
        except (PyMongoError, InvalidDocument, OverflowError) as e:
            raise BackendError(str(e)) from e

        try:
            await publish_change(self._backend.redis, self.name, self._backend.channel_prefix)
        except RedisError as e:
            # The document is stored; live queries pick it up on their next notice.
            logger.warning("Stored %s/%s but could not publish change notice: %s", self.name, key, e)

    async def find_equal(self, field: str, value: Any) -> list[dict]:
        def _find():
            return list(self._collection.find({field: value}).sort("_id", 1))

        try:
            return await asyncio.to_thread(_find)
        except PyMongoError as e:
            raise BackendError(str(e)) from e

    def subscribe(
        self,
        field: str,
        value: Any,
        on_snapshot: SnapshotCallback,
        on_error: ErrorCallback,
    ) -> Subscription:
        description = f"{self.name}[{field}={value}]"
        task = asyncio.create_task(self._live_query(field, value, on_snapshot, on_error))
        logger.debug("Opened live query %s", description)
        return Subscription(task, description)

    async def _live_query(self, field, value, on_snapshot, on_error):
        channel = changes_channel(self.name, self._backend.channel_prefix)
        pubsub = self._backend.redis.pubsub()
        try:
            # Subscribe before the first find so no change slips in between.
            await pubsub.subscribe(channel)
            on_snapshot(await self.find_equal(field, value))
            async for message in pubsub.listen():
                if message.get("type") != "message":
                    continue
                on_snapshot(await self.find_equal(field, value))
        except BackendError as e:
            logger.warning("Live query %s.%s failed: %s", self.name, field, e)
            on_error(e)
        except RedisError as e:
            logger.warning("Live query %s.%s lost its changes channel: %s", self.name, field, e)
            on_error(BackendError(str(e)))
        except Exception as e:
            logger.exception("Live query %s.%s stopped unexpectedly", self.name, field)
            on_error(BackendError(str(e) or type(e).__name__))
        finally:
            await pubsub.aclose()


class BackendClient:
    def __init__(self, db: Database, redis: redis_async.Redis, channel_prefix: str | None = None):
        self.db = db
        self.redis = redis
        self.channel_prefix = channel_prefix
        self.rides = CollectionRef(self, RIDES_COLLECTION)
        self.bookings = CollectionRef(self, BOOKINGS_COLLECTION)

    async def health(self) -> dict:
        try:
            await asyncio.to_thread(self.db.client.admin.command, "ping")
            mongo_status = "connected"
        except PyMongoError:
            mongo_status = "disconnected"

        try:
            await self.redis.ping()
            redis_status = "connected"
        except RedisError:
            redis_status = "disconnected"

        return {"mongo": mongo_status, "redis": redis_status}
