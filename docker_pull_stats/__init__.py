"""
Docker Hub Pull Statistics Tracker

Samples Docker Hub pull counts on a schedule, keeps every sample in a
time-series store and reports the increase over the last 1, 7 and 30 days.
"""

__version__ = "1.0.0"

from .app import DatabaseManager, DockerHubSampler, PullRecorder, run_sync
from .config import Settings, load_configuration
from .models import CombinedStats, Entity, Sample
from .stats import StatsAggregator, WindowResolver, compute_delta

__all__ = [
    "CombinedStats",
    "DatabaseManager",
    "DockerHubSampler",
    "Entity",
    "PullRecorder",
    "Sample",
    "Settings",
    "StatsAggregator",
    "WindowResolver",
    "compute_delta",
    "load_configuration",
    "run_sync",
]
