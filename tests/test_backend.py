import asyncio

import pytest
from pymongo.errors import PyMongoError
from redis.exceptions import RedisError

from carpool.backend import BackendClient
from carpool.errors import BackendError


class _FakeCursor:
    def __init__(self, docs):
        self.docs = docs

    def sort(self, key, direction):
        return sorted(self.docs, key=lambda d: d[key], reverse=direction < 0)

    def __iter__(self):
        return iter(self.docs)


class _FakeMongoCollection:
    def __init__(self):
        self.docs = {}
        self.error = None

    def replace_one(self, flt, doc, upsert=False):
        if self.error:
            raise PyMongoError(self.error)
        self.docs[flt["_id"]] = doc

    def find(self, flt):
        if self.error:
            raise PyMongoError(self.error)
        (field, value), = flt.items()
        return _FakeCursor([d for d in self.docs.values() if d.get(field) == value])


class _FakeDB(dict):
    def __missing__(self, name):
        self[name] = _FakeMongoCollection()
        return self[name]


class _FakePubSub:
    def __init__(self, redis):
        self.redis = redis
        self.channels = []
        self.closed = False
        self.queue = asyncio.Queue()

    async def subscribe(self, channel):
        self.channels.append(channel)
        self.redis.listeners.setdefault(channel, []).append(self)
        await self.queue.put({"type": "subscribe", "channel": channel, "data": 1})

    async def listen(self):
        while True:
            message = await self.queue.get()
            if isinstance(message, Exception):
                raise message
            yield message

    async def aclose(self):
        self.closed = True
        for channel in self.channels:
            self.redis.listeners[channel].remove(self)


class _FakeRedis:
    def __init__(self):
        self.listeners = {}
        self.published = []
        self.pubsubs = []

    def pubsub(self):
        ps = _FakePubSub(self)
        self.pubsubs.append(ps)
        return ps

    async def publish(self, channel, data):
        self.published.append((channel, data))
        for ps in self.listeners.get(channel, []):
            await ps.queue.put({"type": "message", "channel": channel, "data": data})
        return len(self.listeners.get(channel, []))


@pytest.fixture
def client():
    return BackendClient(_FakeDB(), _FakeRedis(), channel_prefix="test")


async def _until(predicate):
    for _ in range(100):
        if predicate():
            return
        await asyncio.sleep(0.01)
    raise AssertionError("condition not reached")


def test_generated_ids_are_unique_and_ordered(client):
    ids = [client.rides.generate_id() for _ in range(5)]
    assert all(ids)
    assert len(set(ids)) == 5
    assert ids == sorted(ids)


def test_set_value_stores_document_and_publishes_change(client):
    asyncio.run(client.rides.set_value("r1", {"rideId": "r1", "from": "A"}))

    assert client.db["rides"].docs["r1"] == {"rideId": "r1", "from": "A", "_id": "r1"}
    assert client.redis.published == [("test:changes:rides", "rides")]


def test_set_value_failure_raises_backend_error(client):
    client.db["rides"].error = "not authorized"

    with pytest.raises(BackendError, match="not authorized"):
        asyncio.run(client.rides.set_value("r1", {"rideId": "r1"}))
    assert client.redis.published == []


def test_set_value_survives_a_lost_change_notice(client, monkeypatch):
    async def _broken_publish(*args):
        raise RedisError("connection reset")

    monkeypatch.setattr(client.redis, "publish", _broken_publish)

    asyncio.run(client.rides.set_value("r1", {"rideId": "r1"}))
    assert "r1" in client.db["rides"].docs


def test_live_query_redelivers_full_result_set(client):
    snapshots, errors = [], []
    client.db["bookings"].docs = {
        "b2": {"_id": "b2", "riderId": "u1"},
        "b1": {"_id": "b1", "riderId": "u1"},
        "b3": {"_id": "b3", "riderId": "u2"},
    }

    async def scenario():
        sub = client.bookings.subscribe("riderId", "u1", snapshots.append, errors.append)
        await _until(lambda: len(snapshots) == 1)

        await client.bookings.set_value("b4", {"riderId": "u1"})
        await _until(lambda: len(snapshots) == 2)

        sub.close()
        await _until(lambda: sub.closed)
        await asyncio.sleep(0)
        return sub

    sub = asyncio.run(scenario())

    assert [d["_id"] for d in snapshots[0]] == ["b1", "b2"]
    assert [d["_id"] for d in snapshots[1]] == ["b1", "b2", "b4"]
    assert errors == []
    assert client.redis.pubsubs[0].channels == ["test:changes:bookings"]
    assert client.redis.pubsubs[0].closed is True


def test_live_query_reports_errors_once(client):
    snapshots, errors = [], []
    client.db["bookings"].error = "query failed"

    async def scenario():
        sub = client.bookings.subscribe("driverId", "u1", snapshots.append, errors.append)
        await _until(lambda: sub.closed)

    asyncio.run(scenario())

    assert snapshots == []
    assert len(errors) == 1
    assert isinstance(errors[0], BackendError)
    assert client.redis.pubsubs[0].closed is True


def test_health_reports_each_store(client, monkeypatch):
    class _Admin:
        def command(self, name):
            raise PyMongoError("down")

    client.db.client = type("C", (), {"admin": _Admin()})()

    async def _ping():
        return True

    monkeypatch.setattr(client.redis, "ping", _ping, raising=False)

    assert asyncio.run(client.health()) == {"mongo": "disconnected", "redis": "connected"}


def test_set_value_turns_encoding_errors_into_backend_errors(client, monkeypatch):
    def _too_large(flt, doc, upsert=False):
        raise OverflowError("MongoDB can only handle up to 8-byte ints")

    monkeypatch.setattr(client.db["rides"], "replace_one", _too_large)

    with pytest.raises(BackendError, match="8-byte ints"):
        asyncio.run(client.rides.set_value("r1", {"availableSeats": 10**20}))
    assert client.redis.published == []


def test_live_query_reports_unexpected_failures(client, monkeypatch):
    snapshots, errors = [], []

    def _bad_find(flt):
        raise ValueError("invalid BSON")

    monkeypatch.setattr(client.db["bookings"], "find", _bad_find)

    async def scenario():
        sub = client.bookings.subscribe("riderId", "u1", snapshots.append, errors.append)
        await _until(lambda: sub.closed)

    asyncio.run(scenario())

    assert snapshots == []
    assert len(errors) == 1
    assert isinstance(errors[0], BackendError)
    assert "invalid BSON" in str(errors[0])
    assert client.redis.pubsubs[0].closed is True
