"""
Chunked store queries.

InfluxDB 3 rejects queries whose time range touches more parquet files than
its configured limit. When that happens the newest/oldest timestamp is looked
up one ``store_chunk_days`` window at a time, up to ``store_lookback_days``
back. Data older than the lookback is invisible to this helper.
"""

import logging
import math
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional, Protocol

from ..config import SyncSettings
from ..storage.influx_store import is_scan_limit_error

logger = logging.getLogger(__name__)


class TimeRangeStore(Protocol):
    async def query_extreme_time(
        self,
        measurement: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        newest: bool = True,
    ) -> Optional[datetime]: ...


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ChunkedQueryHelper:
    """Find the newest/oldest timestamp of a measurement under a scan ceiling"""

    def __init__(
        self,
        store: TimeRangeStore,
        settings: SyncSettings,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.store = store
        self.chunk_days = settings.store_chunk_days
        self.lookback_days = settings.store_lookback_days
        self.try_unbounded_first = settings.store_try_unbounded_first
        self.fallback_on_unknown_errors = settings.store_fallback_on_unknown_errors
        self.patterns = settings.scan_limit_patterns
        self.clock = clock

    def _should_fall_back(self, exc: Exception) -> bool:
        if is_scan_limit_error(exc, self.patterns):
            return True
        return self.fallback_on_unknown_errors

    def chunk_ranges(self, now: datetime) -> list[tuple[datetime, datetime]]:
        """``(start, end]`` windows, most recent first, covering the lookback"""
        count = math.ceil(self.lookback_days / self.chunk_days)
        ranges = []
        for index in range(count):
            near = index * self.chunk_days
            far = min((index + 1) * self.chunk_days, self.lookback_days)
            ranges.append((now - timedelta(days=far), now - timedelta(days=near)))
        return ranges

    async def newest_time(self, measurement: str) -> Optional[datetime]:
        """Newest timestamp of ``measurement``, or None if nothing was found"""
        return await self._find(measurement, newest=True)

    async def oldest_time(self, measurement: str) -> Optional[datetime]:
        """Oldest timestamp of ``measurement`` within the lookback, or None"""
        return await self._find(measurement, newest=False)

    async def _find(self, measurement: str, newest: bool) -> Optional[datetime]:
        if self.try_unbounded_first:
            try:
                return await self.store.query_extreme_time(measurement, newest=newest)
            except Exception as e:
                if not self._should_fall_back(e):
                    raise
                logger.warning(
                    f"Unbounded query on {measurement} rejected ({e}); "
                    f"falling back to {self.chunk_days}-day chunks over {self.lookback_days} days"
                )

        ranges = self.chunk_ranges(self.clock())
        if not newest:
            ranges.reverse()

        for attempt, (start, end) in enumerate(ranges, start=1):
            try:
                found = await self.store.query_extreme_time(measurement, start=start, end=end, newest=newest)
            except Exception as e:
                if not self._should_fall_back(e):
                    raise
                logger.warning(
                    f"Chunk {attempt}/{len(ranges)} ({start:%Y-%m-%d} - {end:%Y-%m-%d}) "
                    f"of {measurement} exceeded the scan limit, trying next chunk"
                )
                continue

            if found is not None:
                logger.debug(f"Found {measurement} {'newest' if newest else 'oldest'} time {found} in chunk {attempt}")
                return found

        logger.info(f"No {measurement} data in the last {self.lookback_days} days")
        return None
