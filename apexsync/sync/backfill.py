"""
Gap-filling backfill - rewrites the last ``backfill_days`` of probe readings
and outlet state on every startup, before live polling begins.

Nothing is compared with the store: rewriting a point with the same tags and
timestamp is a no-op for InfluxDB, so replaying the window is always safe.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Callable

from ..config import SyncSettings
from ..models import BackfillReport
from ..storage.mapper import map_outlet_record_to_point, map_record_to_points, timed_records
from .batch_writer import BatchWriter

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class GapFillBackfill:
    """Unconditional replay of the recent window"""

    def __init__(
        self,
        source,
        store,
        settings: SyncSettings,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.source = source
        self.days = settings.backfill_days
        self.writer = BatchWriter(store, settings)
        self.clock = clock

    async def run(self) -> BackfillReport:
        """Backfill both streams. Never raises."""
        start = self.clock() - timedelta(days=self.days)
        report = BackfillReport()
        logger.info(f"Backfilling the last {self.days} day(s) from {start.isoformat()}...")

        await self._backfill_probes(start, report)
        await self._backfill_outlets(start, report)

        if report.probe_records == 0 and report.outlet_records == 0 and not report.errors:
            logger.info("Backfill: no records found")
        else:
            logger.info(
                f"Backfill complete: {report.probe_points} probe points, "
                f"{report.outlet_points} outlet points, {report.errors} errors"
            )
        return report

    async def _backfill_probes(self, start: datetime, report: BackfillReport):
        try:
            datalog = await self.source.fetch_historical_datalog(start, self.days)
            report.probe_records = len(datalog.records)
            if not datalog.records:
                logger.info("Backfill: no probe records found")
                return

            points = []
            for _, record in timed_records(datalog.records, datalog.timezone):
                points.extend(map_record_to_points(record, datalog.hostname, datalog.timezone))
            report.probe_points = await self.writer.write(points)
            logger.info(f"Backfill: wrote {report.probe_points} probe points from {report.probe_records} records")
        except Exception as e:
            report.errors += 1
            logger.error(f"Probe backfill failed: {e}", exc_info=True)

    async def _backfill_outlets(self, start: datetime, report: BackfillReport):
        try:
            outlog = await self.source.fetch_historical_outlog(start, self.days)
            report.outlet_records = len(outlog.records)
            if not outlog.records:
                logger.info("Backfill: no outlet records found")
                return

            points = [
                map_outlet_record_to_point(record, outlog.hostname, outlog.timezone)
                for _, record in timed_records(outlog.records, outlog.timezone)
            ]
            report.outlet_points = await self.writer.write(points)
            logger.info(f"Backfill: wrote {report.outlet_points} outlet points from {report.outlet_records} records")
        except Exception as e:
            report.errors += 1
            logger.error(f"Outlet backfill failed: {e}", exc_info=True)
