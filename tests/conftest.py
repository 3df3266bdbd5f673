from types import SimpleNamespace

import pytest

from carpool.errors import BackendError


class FakeSubscription:
    def __init__(self, field, value, on_snapshot, on_error):
        self.field = field
        self.value = value
        self.on_snapshot = on_snapshot
        self.on_error = on_error
        self.closed = False

    def close(self):
        self.closed = True

    def push(self, docs):
        if not self.closed:
            self.on_snapshot(list(docs))

    def fail(self, message="permission denied"):
        if not self.closed:
            self.on_error(BackendError(message))


class FakeCollection:
    def __init__(self, name):
        self.name = name
        self.docs = {}
        self.writes = []
        self.subscriptions = []
        self.fail_with = None
        self._counter = 0

    def generate_id(self):
        self._counter += 1
        return f"{self.name}-{self._counter:04d}"

    async def set_value(self, key, document):
        self.writes.append((key, document))
        if self.fail_with:
            raise BackendError(self.fail_with)
        self.docs[key] = {**document, "_id": key}

    def matching(self, field, value):
        return [doc for _, doc in sorted(self.docs.items()) if doc.get(field) == value]

    def subscribe(self, field, value, on_snapshot, on_error):
        sub = FakeSubscription(field, value, on_snapshot, on_error)
        self.subscriptions.append(sub)
        sub.push(self.matching(field, value))
        return sub

    @property
    def open_subscriptions(self):
        return [s for s in self.subscriptions if not s.closed]


class FakeBackend:
    def __init__(self):
        self.rides = FakeCollection("rides")
        self.bookings = FakeCollection("bookings")


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def prefs():
    return SimpleNamespace(user_id="u1", user_name="Ana")


@pytest.fixture
def signed_out():
    return SimpleNamespace(user_id=None, user_name=None)
