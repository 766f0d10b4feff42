"""Tests for the Firestore store using an in-memory stand-in for the client."""

from __future__ import annotations

from conftest import GADGET, WIDGET, days_ago
from docker_pull_stats.firestore_db import FirestoreDatabaseManager
from docker_pull_stats.models import Sample


class FakeDocument:
    def __init__(self, data):
        self._data = data

    def to_dict(self):
        return dict(self._data)


class FakeQuery:
    """Supports the subset of the query API the store uses."""

    def __init__(self, docs):
        self.docs = docs

    def where(self, field, op, value):
        ops = {"==": lambda a, b: a == b, ">": lambda a, b: a > b}
        return FakeQuery([d for d in self.docs if ops[op](d[field], value)])

    def order_by(self, field, direction="ASCENDING"):
        return FakeQuery(sorted(self.docs, key=lambda d: d[field], reverse=direction == "DESCENDING"))

    def limit(self, count):
        return FakeQuery(self.docs[:count])

    def stream(self):
        return iter(FakeDocument(d) for d in self.docs)


class FakeCollection(FakeQuery):
    def add(self, data):
        self.docs.append(dict(data))


class FakeClient:
    def __init__(self):
        self.collections = {}

    def collection(self, name):
        return self.collections.setdefault(name, FakeCollection([]))


def _store():
    store = FirestoreDatabaseManager(client=FakeClient())
    store.append("acme/widget", days_ago(10), 100)
    store.append("acme/widget", days_ago(3), 300)
    store.append("acme/widget", days_ago(5), 200)
    store.append("acme/gadget", days_ago(2), 9)
    return store


def test_append_writes_documents():
    store = _store()

    docs = store.db.collection("pull_history").docs
    assert len(docs) == 4
    assert docs[0] == {
        "entity": "acme/widget", "org": "acme", "repo": "widget",
        "timestamp": "2026-10-08T12:00:00Z", "pull_count": 100,
    }


def test_query_oldest_since():
    store = _store()

    assert store.query_oldest_since("acme/widget", days_ago(7)) == Sample(WIDGET, days_ago(5), 200)
    assert store.query_oldest_since("acme/widget", days_ago(1)) is None


def test_latest_sample_and_history():
    store = _store()

    assert store.latest_sample("acme/gadget") == Sample(GADGET, days_ago(2), 9)
    assert store.latest_sample("acme/nothing") is None
    assert [s.value for s in store.get_history("acme/widget", days_ago(30))] == [100, 200, 300]
