"""
Chunked range scanner - walks the controller's retained history in fixed-size
day chunks (one datalog request per chunk) and measures how much of the
window actually holds readings.
"""

import logging
import math
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, Optional, Protocol

from ..models import ApexDatalog, ApexRecord, CoverageResult

logger = logging.getLogger(__name__)

ChunkSink = Callable[[ApexDatalog], Awaitable[None]]


class HistoricalSource(Protocol):
    async def fetch_historical_datalog(self, start: datetime, days: int) -> ApexDatalog: ...


def has_useful_data(record: ApexRecord) -> bool:
    """True if at least one probe carries a finite reading (not NaN, not +/-Inf)"""
    return any(math.isfinite(probe.value) for probe in record.probes)


def extract_date_part(date_str: str) -> str:
    """Calendar date ("MM/DD/YYYY") of an Apex date string"""
    return date_str[:10]


def coverage_percent(days_with_data: int, total_days: int) -> float:
    if total_days <= 0:
        return 0.0
    percent = round((days_with_data / total_days) * 100, 2)
    # A window that straddles midnight touches one more calendar date than days scanned
    return max(0.0, min(100.0, percent))


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ChunkedRangeScanner:
    """
    Scans ``total_days`` of history, oldest chunk first.

    Only counters and the set of distinct dates are kept between chunks, never
    the records themselves. A failed chunk fetch is logged and skipped.
    """

    def __init__(
        self,
        source: HistoricalSource,
        total_days: int = 60,
        chunk_days: int = 3,
        clock: Callable[[], datetime] = _utcnow,
    ):
        if total_days < 1 or chunk_days < 1:
            raise ValueError("total_days and chunk_days must be positive")
        self.source = source
        self.total_days = total_days
        self.chunk_days = chunk_days
        self.clock = clock

    @property
    def total_chunks(self) -> int:
        return math.ceil(self.total_days / self.chunk_days)

    def chunk_windows(self, now: datetime) -> list[tuple[datetime, int]]:
        """(start, days) for every chunk, oldest first; the last may be shorter"""
        window_start = now - timedelta(days=self.total_days)
        windows = []
        for index in range(self.total_chunks):
            offset = index * self.chunk_days
            days = min(self.chunk_days, self.total_days - offset)
            windows.append((window_start + timedelta(days=offset), days))
        return windows

    async def scan(self, on_chunk: Optional[ChunkSink] = None) -> CoverageResult:
        """Scan the window and return its coverage.

        Args:
            on_chunk: awaited with each chunk's full datalog when the chunk holds
                at least one useful record. Calls are strictly sequential and in
                chronological order. Exceptions raised by the sink propagate.
        """
        windows = self.chunk_windows(self.clock())
        total_chunks = len(windows)

        oldest_useful_date: Optional[str] = None
        newest_useful_date: Optional[str] = None
        useful_records = 0
        total_records = 0
        dates_with_data: set[str] = set()

        logger.info(f"Scanning {self.total_days} days of Apex data in {total_chunks} chunks...")

        for index, (chunk_start, days) in enumerate(windows):
            chunk_end = chunk_start + timedelta(days=days - 1)
            label = f"{chunk_start:%m/%d/%Y}-{chunk_end:%m/%d/%Y}"

            try:
                datalog = await self.source.fetch_historical_datalog(chunk_start, days)
            except Exception as e:
                logger.warning(f"[Error] {label}: Failed to fetch ({e})")
                continue

            total_records += len(datalog.records)
            useful = [record for record in datalog.records if has_useful_data(record)]

            if useful:
                useful_records += len(useful)
                # Chunks are visited oldest first, so the first hit is the oldest
                if oldest_useful_date is None:
                    oldest_useful_date = useful[0].date
                newest_useful_date = useful[-1].date
                dates_with_data.update(extract_date_part(record.date) for record in useful)

                if on_chunk is not None:
                    await on_chunk(datalog)

            progress = round(((index + 1) / total_chunks) * 100)
            logger.info(f"[{progress}%] {label}: {len(datalog.records)} records ({len(useful)} useful)")

        logger.info(f"Scan complete: {total_records} total records, {useful_records} useful")

        if useful_records == 0:
            return CoverageResult.empty(total_records, self.total_days)

        days_with_data = len(dates_with_data)
        return CoverageResult(
            total_records=total_records,
            useful_records=useful_records,
            oldest_useful_record_date=oldest_useful_date or "",
            newest_useful_record_date=newest_useful_date or "",
            total_days=self.total_days,
            days_with_data=days_with_data,
            coverage_percent=coverage_percent(days_with_data, self.total_days),
        )
