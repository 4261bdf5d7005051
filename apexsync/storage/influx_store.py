"""
InfluxDB 3 point store.
Thin async wrapper over the synchronous influxdb3 client; blocking calls are
pushed to a worker thread so the polling loop keeps running.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Iterable, Optional, Sequence

from influxdb_client_3 import InfluxDBClient3, Point

from ..config import InfluxSettings

logger = logging.getLogger(__name__)

# Substrings InfluxDB 3 uses when a query would touch too many parquet files
DEFAULT_SCAN_LIMIT_PATTERNS = ("file limit", "parquet files")


class ScanLimitExceeded(Exception):
    """The store refused a query because its time range touches too many files"""


def is_scan_limit_error(exc: BaseException, patterns: Iterable[str] = DEFAULT_SCAN_LIMIT_PATTERNS) -> bool:
    """Return True if ``exc`` is the store's scan-ceiling rejection"""
    if isinstance(exc, ScanLimitExceeded):
        return True
    message = str(exc).lower()
    return any(pattern.lower() in message for pattern in patterns)


def to_utc_datetime(value: Any) -> Optional[datetime]:
    """Normalise a timestamp cell from a query result to an aware UTC datetime"""
    if value is None:
        return None
    if hasattr(value, "to_pydatetime"):
        # pandas.Timestamp
        value = value.to_pydatetime()
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)
    if isinstance(value, int):
        return datetime.fromtimestamp(value / 1_000_000_000, tz=timezone.utc)
    if isinstance(value, str):
        return to_utc_datetime(datetime.fromisoformat(value.replace("Z", "+00:00")))
    raise TypeError(f"Unsupported timestamp value: {value!r}")


def _sql_time(value: datetime) -> str:
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


class InfluxStore:
    """Write batches of points and answer time-range queries"""

    def __init__(
        self,
        settings: InfluxSettings,
        scan_limit_patterns: Optional[Sequence[str]] = None,
        client: Optional[InfluxDBClient3] = None,
    ):
        self.database = settings.database
        self.scan_limit_patterns = tuple(scan_limit_patterns or DEFAULT_SCAN_LIMIT_PATTERNS)
        self.client = client or InfluxDBClient3(
            host=settings.host,
            token=settings.token or "",
            database=settings.database,
        )
        self._closed = False
        logger.info(f"InfluxDB store ready at {settings.host}, database: {settings.database}")

    async def write_points(self, points: list[Point]) -> None:
        """Write points; an empty list is a no-op"""
        if not points:
            return
        await asyncio.to_thread(self.client.write, record=points)

    async def query(self, sql: str) -> list[dict]:
        """Run a SQL query and return rows as dicts.

        Raises:
            ScanLimitExceeded: if the store rejected the query's range.
        """
        try:
            table = await asyncio.to_thread(self.client.query, query=sql, language="sql")
        except Exception as e:
            if is_scan_limit_error(e, self.scan_limit_patterns):
                raise ScanLimitExceeded(str(e)) from e
            raise
        return table.to_pylist()

    async def query_extreme_time(
        self,
        measurement: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        newest: bool = True,
    ) -> Optional[datetime]:
        """Newest (or oldest) timestamp of ``measurement`` in ``(start, end]``.

        Either bound may be omitted. Returns None when nothing matches.
        """
        conditions = []
        if start is not None:
            conditions.append(f"time > '{_sql_time(start)}'")
        if end is not None:
            conditions.append(f"time <= '{_sql_time(end)}'")
        where = f" WHERE {' AND '.join(conditions)}" if conditions else ""
        order = "DESC" if newest else "ASC"
        sql = f'SELECT time FROM "{measurement}"{where} ORDER BY time {order} LIMIT 1'

        rows = await self.query(sql)
        if not rows:
            return None
        return to_utc_datetime(rows[0].get("time"))

    async def close(self) -> None:
        """Close the client connection (safe to call more than once)"""
        if self._closed:
            return
        self._closed = True
        await asyncio.to_thread(self.client.close)
        logger.info("InfluxDB store closed")
