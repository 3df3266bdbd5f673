import logging

from redis import asyncio as redis_async

from carpool.settings import settings

logger = logging.getLogger(__name__)


def changes_channel(collection: str, prefix: str | None = None) -> str:
    return f"{prefix or settings.CHANGES_CHANNEL_PREFIX}:changes:{collection}"


async def connect_redis(url: str | None = None) -> redis_async.Redis:
    client = redis_async.from_url(url or settings.REDIS_URL, decode_responses=True)
    await client.ping()
    logger.info("Connected to Redis")
    return client


async def close_redis(client: redis_async.Redis | None):
    if client is not None:
        await client.aclose()


async def publish_change(client: redis_async.Redis, collection: str, prefix: str | None = None) -> int:
    """Tell every live query on `collection` to re-run."""
    return await client.publish(changes_channel(collection, prefix), collection)
