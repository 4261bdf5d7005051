"""
Freshness reconciler - checks whether the store has caught up with the
controller's history and backfills whatever is missing.

Runs as a detached background task next to the live polling loop. Both write
to the same store without coordination; every write is an idempotent point
write (same tags + timestamp overwrite), so overlapping writes are safe.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from ..config import SyncSettings
from ..models import ApexDatalog, SyncReport
from ..storage.influx_store import is_scan_limit_error
from ..storage.mapper import PROBE_MEASUREMENT, map_record_to_points, timed_records
from .batch_writer import BatchWriter
from .chunked_query import ChunkedQueryHelper
from .range_scanner import ChunkedRangeScanner

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def format_duration(seconds: float) -> str:
    """Human readable duration, e.g. "2d 3h 15m" or "42s" """
    seconds = int(abs(seconds))
    days, seconds = divmod(seconds, 86400)
    hours, seconds = divmod(seconds, 3600)
    minutes, seconds = divmod(seconds, 60)
    parts = []
    if days:
        parts.append(f"{days}d")
    if hours:
        parts.append(f"{hours}h")
    if minutes:
        parts.append(f"{minutes}m")
    if not parts:
        parts.append(f"{seconds}s")
    return " ".join(parts)


class _PassCounters:
    def __init__(self):
        self.points_written = 0
        self.points_skipped = 0


class FreshnessReconciler:
    """Compare controller vs. store and catch the store up"""

    def __init__(
        self,
        source,
        store,
        settings: SyncSettings,
        clock: Callable[[], datetime] = _utcnow,
    ):
        """
        Args:
            source: record source (``fetch_datalog``, ``fetch_historical_datalog``)
            store: point store (``write_points``, ``query_extreme_time``)
            settings: sync settings
            clock: returns the current UTC time
        """
        self.source = source
        self.store = store
        self.settings = settings
        self.scanner = ChunkedRangeScanner(
            source,
            total_days=settings.scan_days,
            chunk_days=settings.scan_chunk_days,
            clock=clock,
        )
        self.query_helper = ChunkedQueryHelper(store, settings, clock=clock)
        self.writer = BatchWriter(store, settings)
        self._task: Optional[asyncio.Task] = None

    def start_background(self) -> asyncio.Task:
        """Launch ``run()`` as a detached task and return it"""
        self._task = asyncio.create_task(self.run(), name="freshness-reconciler")
        return self._task

    @property
    def task(self) -> Optional[asyncio.Task]:
        return self._task

    async def run(self) -> SyncReport:
        """Run one pass. Never raises; failures are logged and reported."""
        try:
            return await self._run_pass()
        except Exception as e:
            if is_scan_limit_error(e, self.settings.scan_limit_patterns):
                self._log_scan_limit_guidance(e)
                return SyncReport(status="scan_limit", error=str(e))
            logger.error(f"Freshness check failed: {e}", exc_info=True)
            return SyncReport(status="error", error=str(e))

    async def _run_pass(self) -> SyncReport:
        logger.info("Checking data freshness...")

        datalog = await self.source.fetch_datalog()
        timed = timed_records(datalog.records, datalog.timezone)
        if not timed:
            logger.info("No records available from the Apex, nothing to reconcile")
            return SyncReport(status="no_records")
        source_latest = timed[-1][0]

        # Captured once; later chunks keep using it even as live writes land
        cutoff = await self.query_helper.newest_time(PROBE_MEASUREMENT)
        if self.settings.force_full_sync:
            logger.info("FORCE_FULL_SYNC set: rewriting every record, relying on store deduplication")
        elif cutoff is None:
            logger.info("No existing probe data found, syncing full history")
        else:
            logger.info(f"Store newest probe point: {cutoff.isoformat()}")

        counters = _PassCounters()

        async def write_chunk(chunk: ApexDatalog):
            await self._write_chunk(chunk, cutoff, counters)

        coverage = await self.scanner.scan(on_chunk=write_chunk)

        store_newest = await self.query_helper.newest_time(PROBE_MEASUREMENT)
        store_oldest = await self.query_helper.oldest_time(PROBE_MEASUREMENT)

        report = SyncReport(
            status=self._classify(source_latest, store_newest),
            source_latest=source_latest,
            store_newest=store_newest,
            store_oldest=store_oldest,
            cutoff=cutoff,
            lag_seconds=(source_latest - store_newest).total_seconds() if store_newest else None,
            points_written=counters.points_written,
            points_skipped=counters.points_skipped,
            coverage=coverage,
        )
        self._log_report(report)
        return report

    def _is_new(self, timestamp: datetime, cutoff: Optional[datetime]) -> bool:
        if self.settings.force_full_sync or cutoff is None:
            return True
        return timestamp > cutoff

    async def _write_chunk(self, chunk: ApexDatalog, cutoff: Optional[datetime], counters: _PassCounters):
        points = []
        for timestamp, record in timed_records(chunk.records, chunk.timezone):
            record_points = map_record_to_points(record, chunk.hostname, chunk.timezone)
            if self._is_new(timestamp, cutoff):
                points.extend(record_points)
            else:
                counters.points_skipped += len(record_points)

        if not points:
            return

        counters.points_written += await self.writer.write(points)
        await self.writer.pause_between_chunks()

    def _classify(self, source_latest: datetime, store_newest: Optional[datetime]) -> str:
        if store_newest is None:
            return "empty_store"
        lag = (source_latest - store_newest).total_seconds()
        if abs(lag) <= self.settings.up_to_date_tolerance_s:
            return "up_to_date"
        return "behind" if lag > 0 else "ahead"

    def _log_report(self, report: SyncReport):
        coverage = report.coverage
        logger.info("=" * 60)
        logger.info("Data freshness")
        logger.info(f"  Apex latest record:   {report.source_latest.isoformat()}")
        logger.info(f"  Store newest point:   {report.store_newest.isoformat() if report.store_newest else 'none'}")
        logger.info(f"  Store oldest point:   {report.store_oldest.isoformat() if report.store_oldest else 'none'}")

        if report.status == "empty_store":
            logger.warning("  Status: store has no probe data")
        elif report.status == "up_to_date":
            logger.info("  Status: up to date")
        elif report.status == "behind":
            logger.warning(f"  Status: database behind by {format_duration(report.lag_seconds)}")
        else:
            logger.warning(f"  Status: database ahead by {format_duration(report.lag_seconds)}")

        if coverage is not None:
            logger.info(
                f"  Apex coverage:        {coverage.coverage_percent:.2f}% "
                f"({coverage.days_with_data}/{coverage.total_days} days, "
                f"{coverage.useful_records}/{coverage.total_records} useful records)"
            )
            if coverage.useful_records:
                logger.info(
                    f"  Apex history:         {coverage.oldest_useful_record_date} → "
                    f"{coverage.newest_useful_record_date}"
                )
        logger.info(f"  Points written:       {report.points_written}")
        logger.info(f"  Points skipped:       {report.points_skipped}")
        logger.info("=" * 60)

    def _log_scan_limit_guidance(self, error: Exception):
        logger.error(f"InfluxDB rejected the freshness query: {error}")
        logger.error("The query touched more parquet files than the server's file limit allows.")
        logger.error("To fix this, either:")
        logger.error(
            f"  1. Reduce STORE_LOOKBACK_DAYS (currently {self.settings.store_lookback_days}) "
            f"or STORE_CHUNK_DAYS (currently {self.settings.store_chunk_days})"
        )
        logger.error("  2. Let InfluxDB compact its files (or raise its --query-file-limit) and restart apexsync")
        logger.error("Skipping freshness check; live polling continues")
