"""Tests for the dashboard server and the background sync thread."""

from __future__ import annotations

import threading

import pytest
import requests

from conftest import GADGET, NOW, WIDGET, FakeStore, days_ago, make_sampler
from docker_pull_stats.config import Settings
from docker_pull_stats.models import CombinedStats, Sample
from docker_pull_stats.server import (
    BackgroundSyncThread,
    create_server,
    generate_badge_svg,
    generate_stats_html,
)
from docker_pull_stats.stats import WindowResolver


@pytest.fixture
def dashboard():
    """Run a StatsServer on an ephemeral port; yields (base_url, store, server)."""
    store = FakeStore([Sample(WIDGET, days_ago(0.5), 900_000)])
    sampler = make_sampler({"acme/widget": 1_000_000, "acme/gadget": 42})
    settings = Settings(entities=(WIDGET, GADGET))
    server = create_server(settings, port=0, host="127.0.0.1", db_manager=store, sampler=sampler)
    server.aggregator.resolver = WindowResolver(store, clock=lambda: NOW)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    try:
        yield f"http://127.0.0.1:{server.server_address[1]}", store, server
    finally:
        server.shutdown()
        server.server_close()
        thread.join(timeout=5)


def test_api_stats_returns_combined_rows(dashboard):
    base_url, _, _ = dashboard

    response = requests.get(f"{base_url}/api/stats", timeout=10)

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert [row["repo"] for row in body["stats"]] == ["widget", "gadget"]
    assert body["stats"][0]["totalPulls"] == 1_000_000
    # The stored sample is 12 hours old, so it is the oldest one in every window
    assert body["stats"][0]["oneDayPulls"] == 100_000
    assert body["stats"][1]["oneDayPulls"] == 0


def test_index_renders_html_table(dashboard):
    base_url, _, _ = dashboard

    response = requests.get(base_url + "/", timeout=10)

    assert response.status_code == 200
    assert response.headers["Content-type"].startswith("text/html")
    assert "<td>acme/widget</td>" in response.text
    assert "<td>1,000,000</td>" in response.text
    assert "+100,000" in response.text


def test_test_fetch_records_and_returns_samples(dashboard):
    base_url, store, _ = dashboard

    response = requests.get(f"{base_url}/test-fetch", timeout=10)

    assert response.status_code == 200
    assert response.json() == [
        {"timestamp": "2026-10-18T12:00:00Z", "org": "acme", "repo": "widget", "pullCount": 1_000_000},
        {"timestamp": "2026-10-18T12:00:00Z", "org": "acme", "repo": "gadget", "pullCount": 42},
    ]
    assert len(store.samples) == 3


def test_history_endpoint(dashboard):
    base_url, _, _ = dashboard

    response = requests.get(f"{base_url}/api/repo/history", params={"repo": "acme/widget", "days": "3650"}, timeout=10)

    assert response.status_code == 200
    assert [point["pullCount"] for point in response.json()["data"]] == [900_000]


@pytest.mark.parametrize("params", [{}, {"repo": "widget"}, {"repo": "acme/widget", "days": "x"}])
def test_history_endpoint_rejects_bad_parameters(dashboard, params):
    base_url, _, _ = dashboard

    response = requests.get(f"{base_url}/api/repo/history", params=params, timeout=10)

    assert response.status_code == 400
    assert response.json()["success"] is False


def test_badge_shows_latest_total(dashboard):
    base_url, _, _ = dashboard

    known = requests.get(f"{base_url}/badge/acme/widget/pulls.svg", timeout=10)
    unknown = requests.get(f"{base_url}/badge/acme/nothing/pulls.svg", timeout=10)

    assert known.headers["Content-type"] == "image/svg+xml"
    assert "900,000" in known.text
    assert "unknown" in unknown.text


def test_unknown_path_is_404(dashboard):
    base_url, _, _ = dashboard

    assert requests.get(f"{base_url}/nope", timeout=10).status_code == 404


def test_store_outage_still_renders_totals(dashboard):
    base_url, store, _ = dashboard
    store.fail = True

    body = requests.get(f"{base_url}/api/stats", timeout=10).json()

    assert [(row["totalPulls"], row["oneDayPulls"]) for row in body["stats"]] == [(1_000_000, 0), (42, 0)]


def test_sampling_crash_returns_500(dashboard):
    base_url, _, server = dashboard

    class BrokenSampler:
        def sample(self, entities):
            raise RuntimeError("no network at all")

    server.aggregator.sampler = BrokenSampler()

    response = requests.get(f"{base_url}/api/stats", timeout=10)

    assert response.status_code == 500
    assert response.json() == {"success": False, "message": "Error: no network at all"}


def test_generate_stats_html_escapes_names():
    page = generate_stats_html([CombinedStats("<acme>", "widget", 1234, 1, 22, 333)], updated="now")

    assert "&lt;acme&gt;/widget" in page
    assert "<td>1,234</td>" in page
    assert "+333" in page
    assert "Last updated: now" in page


def test_generate_badge_svg():
    svg = generate_badge_svg("pulls", "1,234", "blue")

    assert svg.startswith("<svg")
    assert 'fill="blue"' in svg
    assert svg.count("1,234") == 2


def test_background_sync_runs_until_stopped():
    calls = threading.Semaphore(0)
    results = iter([(True, "ok"), (False, "upstream down")])

    def sync():
        calls.release()
        try:
            return next(results)
        except StopIteration:
            raise RuntimeError("sync crashed")

    thread = BackgroundSyncThread(interval=0.01, sync=sync)
    thread.start()
    # A failed sync and a raising sync must not stop the loop
    for _ in range(4):
        assert calls.acquire(timeout=5)
    thread.stop()
    thread.join(timeout=5)

    assert not thread.is_alive()
