#!/usr/bin/env python3
"""
Data models for Docker Hub pull statistics.

Contains the core data classes used throughout the application.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Optional

TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%SZ"

# Look-back windows, in days
WINDOWS = (1, 7, 30)


def utc_now() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def format_timestamp(moment: datetime) -> str:
    """Format a datetime as a fixed-width UTC string that sorts chronologically."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).strftime(TIMESTAMP_FORMAT)


def parse_timestamp(value: str) -> datetime:
    """Parse a stored timestamp back into an aware UTC datetime."""
    return datetime.strptime(value, TIMESTAMP_FORMAT).replace(tzinfo=timezone.utc)


@dataclass(frozen=True)
class Entity:
    """A tracked Docker Hub repository."""
    org: str
    repo: str

    @property
    def key(self) -> str:
        return f"{self.org}/{self.repo}"

    def __str__(self) -> str:
        return self.key

    @classmethod
    def parse(cls, value: str) -> 'Entity':
        """Create an Entity from an ``org/repo`` string."""
        org, sep, repo = value.strip().partition("/")
        if not sep or not org or not repo or "/" in repo:
            raise ValueError(f"Invalid repository '{value}', expected 'org/repo'")
        return cls(org, repo)


@dataclass(frozen=True)
class Sample:
    """One observation of a repository's absolute pull count."""
    entity: Entity
    timestamp: datetime
    value: int

    def __str__(self) -> str:
        return f"{self.entity} {format_timestamp(self.timestamp)} {self.value}"

    def to_dict(self) -> Dict:
        return {
            "timestamp": format_timestamp(self.timestamp),
            "org": self.entity.org,
            "repo": self.entity.repo,
            "pullCount": self.value,
        }


class LookupStatus(Enum):
    FOUND = "found"
    ABSENT = "absent"
    FAILED = "failed"


@dataclass(frozen=True)
class WindowLookup:
    """Outcome of resolving the oldest stored sample inside a look-back window."""
    entity: Entity
    window_days: int
    status: LookupStatus
    sample: Optional[Sample] = None

    @property
    def resolved(self) -> Optional[Sample]:
        """The historical sample, or None when it is absent or the lookup failed."""
        return self.sample if self.status is LookupStatus.FOUND else None


@dataclass(frozen=True)
class CombinedStats:
    """Current total pulls plus the increase over each look-back window."""
    org: str
    repo: str
    total_pulls: int
    one_day_pulls: int = 0
    seven_day_pulls: int = 0
    thirty_day_pulls: int = 0

    @property
    def key(self) -> str:
        return f"{self.org}/{self.repo}"

    def to_dict(self) -> Dict:
        return {
            "org": self.org,
            "repo": self.repo,
            "totalPulls": self.total_pulls,
            "oneDayPulls": self.one_day_pulls,
            "sevenDayPulls": self.seven_day_pulls,
            "thirtyDayPulls": self.thirty_day_pulls,
        }
