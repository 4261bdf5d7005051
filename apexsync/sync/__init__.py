# Sync module - history scanning, reconciliation and backfill
from .backfill import GapFillBackfill
from .batch_writer import BatchWriter
from .chunked_query import ChunkedQueryHelper
from .range_scanner import ChunkedRangeScanner, has_useful_data
from .reconciler import FreshnessReconciler

__all__ = [
    'GapFillBackfill',
    'BatchWriter',
    'ChunkedQueryHelper',
    'ChunkedRangeScanner',
    'has_useful_data',
    'FreshnessReconciler',
]
