"""Shared fakes for the Docker Hub API and the time-series store."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
import requests

from docker_pull_stats.app import DockerHubSampler
from docker_pull_stats.models import Entity, Sample

NOW = datetime(2026, 10, 18, 12, 0, 0, tzinfo=timezone.utc)

WIDGET = Entity("acme", "widget")
GADGET = Entity("acme", "gadget")


class FakeResponse:
    def __init__(self, payload=None, status_code=200):
        self.payload = payload
        self.status_code = status_code

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"HTTP error! status: {self.status_code}")

    def json(self):
        return self.payload


class FakeSession:
    """Maps ``org/repo`` to a pull count, a FakeResponse, or an exception to raise."""

    def __init__(self, counts):
        self.counts = dict(counts)
        self.headers = {}
        self.calls = []

    def get(self, url, timeout=None):
        key = "/".join(url.rstrip("/").split("/")[-2:])
        self.calls.append(key)
        result = self.counts.get(key, FakeResponse({"detail": "Not Found"}, 404))
        if isinstance(result, Exception):
            raise result
        if isinstance(result, FakeResponse):
            return result
        return FakeResponse({"name": key, "pull_count": result})


class FakeStore:
    """In-memory store with the same interface as DatabaseManager."""

    def __init__(self, samples=(), fail=False):
        self.samples = list(samples)
        self.fail = fail
        self.queries = []

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        pass

    def setup_database(self):
        pass

    def append(self, entity_key, timestamp, value):
        if self.fail:
            raise ConnectionError("store unreachable")
        self.samples.append(Sample(Entity.parse(entity_key), timestamp, value))

    def _matching(self, entity_key, since=None):
        if self.fail:
            raise ConnectionError("store unreachable")
        return sorted(
            (s for s in self.samples
             if s.entity.key == entity_key and (since is None or s.timestamp > since)),
            key=lambda s: s.timestamp,
        )

    def query_oldest_since(self, entity_key, since):
        self.queries.append((entity_key, since))
        matching = self._matching(entity_key, since)
        return matching[0] if matching else None

    def latest_sample(self, entity_key):
        matching = self._matching(entity_key)
        return matching[-1] if matching else None

    def get_history(self, entity_key, since):
        return self._matching(entity_key, since)


def days_ago(days: float) -> datetime:
    return NOW - timedelta(days=days)


def make_sampler(counts) -> DockerHubSampler:
    return DockerHubSampler(
        session=FakeSession(counts),
        clock=lambda: NOW,
        sleep=lambda seconds: None,
    )


@pytest.fixture
def store():
    return FakeStore()
