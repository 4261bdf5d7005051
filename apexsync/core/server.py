"""Core SyncServer - startup backfill, live polling and background reconciliation"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from ..config import AppConfig
from ..controllers.apex_client import ApexClient
from ..models import SyncReport
from ..services.diagnostics import DiagnosticsService
from ..storage.influx_store import InfluxStore
from ..storage.mapper import (
    map_datalog_to_points,
    map_status_to_input_points,
    map_status_to_outlet_points,
)
from ..sync.backfill import GapFillBackfill
from ..sync.batch_writer import BatchWriter
from ..sync.reconciler import FreshnessReconciler

logger = logging.getLogger(__name__)

# Log a health summary every N successful polls
HEALTH_LOG_EVERY = 12


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SyncServer:
    """Main server orchestrating the Apex client, the store and the sync routines"""

    def __init__(
        self,
        app_config: AppConfig,
        source: Optional[ApexClient] = None,
        store: Optional[InfluxStore] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        logger.info("Initializing apexsync...")
        self.config = app_config
        settings = app_config.sync

        # Constructed once here, passed to every routine, closed once in stop()
        self.source = source or ApexClient(app_config.apex)
        self.store = store or InfluxStore(
            app_config.influx,
            scan_limit_patterns=settings.scan_limit_patterns,
        )
        self.clock = clock

        self.diagnostics = DiagnosticsService()
        self.writer = BatchWriter(self.store, settings)
        self.backfill = GapFillBackfill(self.source, self.store, settings, clock=clock)
        self.reconciler = FreshnessReconciler(self.source, self.store, settings, clock=clock)

        self.running = False
        self._stop_event = asyncio.Event()

        logger.info(
            f"apexsync initialized (apex: {app_config.apex.host}, "
            f"influx: {app_config.influx.host}/{app_config.influx.database}, "
            f"poll interval: {settings.poll_interval_s}s)"
        )

    async def start(self):
        """Backfill, launch the reconciler, then poll until stopped"""
        if self._stop_event.is_set():
            return
        logger.info("Starting apexsync...")
        self.running = True

        # Must finish before polling starts: it re-establishes continuity
        report = await self.backfill.run()
        self.diagnostics.record_backfill(report)

        # stop() may have run while the backfill was in flight
        if self._stop_event.is_set():
            logger.info("Stopped during backfill, not starting the polling loop")
            return

        if self.config.sync.reconcile_on_startup:
            task = self.reconciler.start_background()
            task.add_done_callback(self._on_reconcile_done)

        await self._poll_loop()

    async def stop(self):
        """Stop polling and close the store connection"""
        if self._stop_event.is_set():
            return
        logger.info("Stopping apexsync...")

        self._stop_event.set()
        self.running = False

        try:
            await self.store.close()
        except Exception as e:
            logger.error(f"Error during shutdown: {e}")

        self.diagnostics.log_summary()
        logger.info("apexsync stopped")

    def _on_reconcile_done(self, task: asyncio.Task):
        if task.cancelled():
            logger.info("Freshness check cancelled")
            return
        report: SyncReport = task.result()
        self.diagnostics.record_sync(report)

    async def poll_once(self) -> int:
        """Fetch the current snapshot and write it. Returns points written."""
        timestamp = self.clock()
        try:
            status = await self.source.fetch_status()
            points = map_status_to_outlet_points(status, timestamp)
            points.extend(map_status_to_input_points(status, timestamp))

            datalog = await self.source.fetch_datalog(minimal=True)
            points.extend(map_datalog_to_points(datalog))

            written = await self.writer.write(points)
        except Exception as e:
            logger.error(f"Poll failed: {e}")
            self.diagnostics.record_error('poll')
            return 0

        self.diagnostics.record_poll(written)
        logger.info(f"Wrote {written} points to InfluxDB")
        return written

    async def _poll_loop(self):
        """Poll the Apex every ``poll_interval_s`` seconds"""
        logger.info("Starting polling loop...")
        interval = self.config.sync.poll_interval_s

        while not self._stop_event.is_set():
            await self.poll_once()

            if self.diagnostics.counters['polls'] and self.diagnostics.counters['polls'] % HEALTH_LOG_EVERY == 0:
                self.diagnostics.log_summary()

            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=interval)
            except asyncio.TimeoutError:
                pass
