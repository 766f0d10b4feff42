#!/usr/bin/env python3
"""
Docker Hub Pull Statistics Tracker

Samples the absolute pull count of each configured Docker Hub repository and
appends every observation to a time-series store (SQLite by default).
"""

import logging
import math
import sqlite3
import sys
import time
from contextlib import closing
from datetime import datetime
from typing import Callable, List, Optional, Sequence, Tuple

import requests

from .config import Settings, load_configuration
from .models import Entity, Sample, format_timestamp, parse_timestamp, utc_now


class DatabaseManager:
    """Append-only SQLite store for pull count samples."""

    def __init__(self, db_path: str):
        """
        Initialize the database manager.

        Args:
            db_path: Path to the SQLite database file.
        """
        self.db_path = db_path
        self.logger = logging.getLogger(__name__)

    def __enter__(self):
        self.setup_database()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        pass

    def _connect(self) -> sqlite3.Connection:
        # One connection per operation; lookups run on worker threads.
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def setup_database(self):
        """Create the necessary tables if they don't exist."""
        try:
            with closing(self._connect()) as conn, conn:
                conn.execute("""
                    CREATE TABLE IF NOT EXISTS pull_history (
                        entity TEXT NOT NULL,
                        org TEXT NOT NULL,
                        repo TEXT NOT NULL,
                        timestamp TEXT NOT NULL,
                        pull_count INTEGER NOT NULL
                    )
                """)
                conn.execute(
                    "CREATE INDEX IF NOT EXISTS idx_pull_history_entity_ts "
                    "ON pull_history (entity, timestamp)"
                )
            self.logger.info("Database setup complete.")
        except sqlite3.Error as e:
            self.logger.error(f"Database setup failed: {e}")
            raise

    def append(self, entity_key: str, timestamp: datetime, value: int) -> None:
        """Append one point. Duplicates are allowed."""
        entity = Entity.parse(entity_key)
        with closing(self._connect()) as conn, conn:
            conn.execute(
                "INSERT INTO pull_history (entity, org, repo, timestamp, pull_count) VALUES (?, ?, ?, ?, ?)",
                (entity.key, entity.org, entity.repo, format_timestamp(timestamp), int(value))
            )

    def _fetch(self, query: str, params: tuple) -> List[sqlite3.Row]:
        with closing(self._connect()) as conn:
            return conn.execute(query, params).fetchall()

    @staticmethod
    def _row_to_sample(row: sqlite3.Row) -> Sample:
        return Sample(Entity(row["org"], row["repo"]), parse_timestamp(row["timestamp"]), row["pull_count"])

    def query_oldest_since(self, entity_key: str, since: datetime) -> Optional[Sample]:
        """Return the earliest point for the repository strictly after ``since``."""
        rows = self._fetch(
            "SELECT org, repo, timestamp, pull_count FROM pull_history "
            "WHERE entity = ? AND timestamp > ? ORDER BY timestamp LIMIT 1",
            (entity_key, format_timestamp(since))
        )
        return self._row_to_sample(rows[0]) if rows else None

    def latest_sample(self, entity_key: str) -> Optional[Sample]:
        """Return the most recent point recorded for the repository."""
        rows = self._fetch(
            "SELECT org, repo, timestamp, pull_count FROM pull_history "
            "WHERE entity = ? ORDER BY timestamp DESC LIMIT 1",
            (entity_key,)
        )
        return self._row_to_sample(rows[0]) if rows else None

    def get_history(self, entity_key: str, since: datetime) -> List[Sample]:
        """Return every point recorded for the repository after ``since``, oldest first."""
        rows = self._fetch(
            "SELECT org, repo, timestamp, pull_count FROM pull_history "
            "WHERE entity = ? AND timestamp > ? ORDER BY timestamp",
            (entity_key, format_timestamp(since))
        )
        return [self._row_to_sample(row) for row in rows]


class DockerHubSampler:
    """Reads the current pull count of Docker Hub repositories."""

    def __init__(self, api_url: str = "https://hub.docker.com/v2/repositories",
                 request_pause: float = 0.1, timeout: float = 30.0,
                 session: Optional[requests.Session] = None,
                 clock: Callable[[], datetime] = utc_now,
                 sleep: Callable[[float], None] = time.sleep):
        """
        Initialize the sampler.

        Args:
            api_url: Base URL of the Docker Hub repositories API
            request_pause: Seconds to wait after each request, to respect the rate limit
            timeout: Per-request timeout in seconds
            session: Optional pre-configured requests session
            clock: Returns the timestamp given to each sample
            sleep: Used for the pause between requests
        """
        self.api_url = api_url.rstrip("/")
        self.request_pause = request_pause
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({"Accept": "application/json"})
        self.clock = clock
        self.sleep = sleep
        self.logger = logging.getLogger(__name__)

    def fetch_pull_count(self, entity: Entity) -> int:
        """Fetch the absolute pull count for a single repository."""
        url = f"{self.api_url}/{entity.org}/{entity.repo}"

        response = self.session.get(url, timeout=self.timeout)
        response.raise_for_status()
        data = response.json()

        pulls = data.get("pull_count") if isinstance(data, dict) else None
        if (isinstance(pulls, bool) or not isinstance(pulls, (int, float))
                or not math.isfinite(pulls) or pulls < 0):
            raise RuntimeError(f"No valid pull_count in Docker Hub response for {entity}: {pulls!r}")
        return int(pulls)

    def sample(self, entities: Sequence[Entity]) -> List[Sample]:
        """
        Sample every repository in order, one request at a time.

        Repositories that fail are logged and left out of the result.
        """
        samples = []
        if not entities:
            self.logger.warning("No Docker repositories configured")
            return samples

        for entity in entities:
            try:
                pulls = self.fetch_pull_count(entity)
                samples.append(Sample(entity, self.clock(), pulls))
                self.logger.debug(f"Sampled {entity}: {pulls}")
            except (requests.RequestException, RuntimeError, ValueError, OverflowError, TypeError) as e:
                self.logger.error(f"Error fetching data for {entity}: {e}")
                continue
            finally:
                # Pause follows every request, failed or not
                if self.request_pause:
                    self.sleep(self.request_pause)

        self.logger.info(f"Sampled {len(samples)} of {len(entities)} repositories")
        return samples


class PullRecorder:
    """Appends samples to the time-series store."""

    def __init__(self, db_manager):
        self.db_manager = db_manager
        self.logger = logging.getLogger(__name__)

    def record(self, samples: Sequence[Sample]) -> int:
        """Append every sample, best effort. Returns the number of points written."""
        written = 0
        for sample in samples:
            try:
                self.db_manager.append(sample.entity.key, sample.timestamp, sample.value)
                written += 1
            except Exception as e:
                self.logger.error(f"Failed to record sample for {sample.entity}: {e}")
                continue

        self.logger.info(f"Successfully saved {written} data points")
        return written


def sync_pull_counts(sampler: DockerHubSampler, recorder: PullRecorder,
                     entities: Sequence[Entity]) -> List[Sample]:
    """Sample every repository once and record the results."""
    samples = sampler.sample(entities)
    recorder.record(samples)
    return samples


def create_sampler(settings: Settings) -> DockerHubSampler:
    return DockerHubSampler(
        api_url=settings.api_url,
        request_pause=settings.request_pause,
        timeout=settings.request_timeout,
    )


def run_sync(settings: Optional[Settings] = None) -> Tuple[bool, str]:
    """Runs the Docker Hub pull count synchronization."""
    from .db_factory import get_database_manager

    logger = logging.getLogger(__name__)
    try:
        if settings is None:
            settings = load_configuration()

        with get_database_manager(settings) as db_manager:
            samples = sync_pull_counts(create_sampler(settings), PullRecorder(db_manager), settings.entities)
        message = f"Sampled {len(samples)} of {len(settings.entities)} repositories"
        logger.info(f"Sync successful: {message}")
        return True, message
    except Exception as e:
        logger.error(f"Application error: {e}")
        return False, str(e)


def main() -> int:
    """Main entry point of the application."""
    try:
        success, message = run_sync()
        print(message)
        return 0 if success else 1
    except KeyboardInterrupt:
        print("\nOperation cancelled by user")
        return 0


if __name__ == "__main__":
    sys.exit(main())
