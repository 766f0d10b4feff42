#!/usr/bin/env python3
"""
Windowed pull statistics.

Combines a fresh sample of every repository with the oldest stored sample
inside each look-back window (1, 7 and 30 days) to report how many pulls
happened in that window.

Historical lookups never raise: a store failure for one repository and
window is logged and treated as "no history", which reports a zero increase.
If the aggregation itself fails, current totals are still returned with all
increases set to zero.
"""

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional, Sequence

from .models import (
    WINDOWS,
    CombinedStats,
    Entity,
    LookupStatus,
    Sample,
    WindowLookup,
    utc_now,
)

logger = logging.getLogger(__name__)


def compute_delta(current: Sample, historical: Optional[Sample]) -> int:
    """Increase from ``historical`` to ``current``; never negative, zero without history."""
    if historical is None:
        return 0
    return max(0, current.value - historical.value)


async def _gather_settled(*aws) -> list:
    """Await every awaitable to completion, then raise the first exception if any failed."""
    results = await asyncio.gather(*aws, return_exceptions=True)
    for result in results:
        if isinstance(result, Exception):
            raise result
    return results


class WindowResolver:
    """Finds the oldest stored sample inside a look-back window."""

    def __init__(self, db_manager, clock: Callable[[], datetime] = utc_now):
        self.db_manager = db_manager
        self.clock = clock

    def resolve_oldest_in_window(self, entity: Entity, window_days: int) -> WindowLookup:
        since = self.clock() - timedelta(days=window_days)
        try:
            sample = self.db_manager.query_oldest_since(entity.key, since)
        except Exception as e:
            logger.error(f"Error querying pull data for {entity} for last {window_days} days: {e}")
            return WindowLookup(entity, window_days, LookupStatus.FAILED)

        if sample is None:
            return WindowLookup(entity, window_days, LookupStatus.ABSENT)
        return WindowLookup(entity, window_days, LookupStatus.FOUND, sample)


class StatsAggregator:
    """Builds CombinedStats rows for every configured repository."""

    def __init__(self, sampler, resolver: WindowResolver, entities: Sequence[Entity],
                 windows: Sequence[int] = WINDOWS):
        self.sampler = sampler
        self.resolver = resolver
        self.entities = tuple(entities)
        self.windows = tuple(windows)

    async def _resolve_window(self, window_days: int) -> Dict[str, Sample]:
        """Resolve one window for every repository concurrently, keyed by ``org/repo``."""
        lookups = await _gather_settled(*(
            asyncio.to_thread(self.resolver.resolve_oldest_in_window, entity, window_days)
            for entity in self.entities
        ))

        resolved = {}
        for lookup in lookups:
            # Failed lookups count as missing history
            if lookup.resolved is not None:
                resolved[lookup.entity.key] = lookup.resolved
        return resolved

    def _combine(self, current: Sample, window_maps: Dict[int, Dict[str, Sample]]) -> CombinedStats:
        deltas = {
            days: compute_delta(current, window_map.get(current.entity.key))
            for days, window_map in window_maps.items()
        }
        return CombinedStats(
            org=current.entity.org,
            repo=current.entity.repo,
            total_pulls=current.value,
            one_day_pulls=deltas.get(1, 0),
            seven_day_pulls=deltas.get(7, 0),
            thirty_day_pulls=deltas.get(30, 0),
        )

    async def compute_combined_stats_async(self) -> List[CombinedStats]:
        if not self.entities:
            logger.warning("No Docker repositories configured")
            return []

        try:
            current_results, *window_results = await _gather_settled(
                asyncio.to_thread(self.sampler.sample, self.entities),
                *(self._resolve_window(days) for days in self.windows)
            )
            window_maps = dict(zip(self.windows, window_results))
            return [self._combine(current, window_maps) for current in current_results]
        except Exception as e:
            logger.error(f"Error processing combined Docker Hub stats: {e}")

        # Current totals only
        current_results = await asyncio.to_thread(self.sampler.sample, self.entities)
        return [
            CombinedStats(org=current.entity.org, repo=current.entity.repo, total_pulls=current.value)
            for current in current_results
        ]

    def compute_combined_stats(self) -> List[CombinedStats]:
        """Synchronous entry point for the HTTP handler and CLI."""
        return asyncio.run(self.compute_combined_stats_async())
