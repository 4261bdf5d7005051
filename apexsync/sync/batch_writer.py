"""Throttled batch writes to the point store"""

import asyncio
import logging
from typing import Protocol

from influxdb_client_3 import Point

from ..config import SyncSettings

logger = logging.getLogger(__name__)


class PointWriter(Protocol):
    async def write_points(self, points: list[Point]) -> None: ...


class BatchWriter:
    """
    Writes points in fixed-size batches with a pause after each batch.

    The pauses give the store time to deduplicate and compact; they are not
    synchronisation.
    """

    def __init__(self, store: PointWriter, settings: SyncSettings):
        self.store = store
        self.batch_size = settings.write_batch_size
        self.batch_delay = settings.write_batch_delay_s
        self.chunk_delay = settings.write_chunk_delay_s

    async def write(self, points: list[Point]) -> int:
        """Write ``points`` in order; returns the number of points written"""
        written = 0
        for offset in range(0, len(points), self.batch_size):
            batch = points[offset:offset + self.batch_size]
            await self.store.write_points(batch)
            written += len(batch)
            if written < len(points):
                await asyncio.sleep(self.batch_delay)
        if written:
            logger.debug(f"Wrote {written} points in {-(-written // self.batch_size)} batches")
        return written

    async def pause_between_chunks(self):
        await asyncio.sleep(self.chunk_delay)
