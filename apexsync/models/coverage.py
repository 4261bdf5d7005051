"""Sync result models"""

from dataclasses import dataclass, asdict
from datetime import datetime
from typing import Optional


@dataclass
class CoverageResult:
    """Coverage of the controller's retained history over one scan window"""
    total_records: int
    useful_records: int
    oldest_useful_record_date: str
    newest_useful_record_date: str
    total_days: int
    days_with_data: int
    coverage_percent: float

    @classmethod
    def empty(cls, total_records: int, total_days: int) -> "CoverageResult":
        return cls(
            total_records=total_records,
            useful_records=0,
            oldest_useful_record_date="",
            newest_useful_record_date="",
            total_days=total_days,
            days_with_data=0,
            coverage_percent=0.0,
        )

    def to_dict(self):
        """Convert to dictionary"""
        return asdict(self)


@dataclass
class SyncReport:
    """Outcome of one freshness reconciliation pass"""
    status: str  # "behind", "up_to_date", "ahead", "empty_store", "no_records", "scan_limit", "error"
    source_latest: Optional[datetime] = None
    store_newest: Optional[datetime] = None
    store_oldest: Optional[datetime] = None
    cutoff: Optional[datetime] = None
    lag_seconds: Optional[float] = None
    points_written: int = 0
    points_skipped: int = 0
    coverage: Optional[CoverageResult] = None
    error: Optional[str] = None


@dataclass
class BackfillReport:
    """Outcome of the startup gap-filling backfill"""
    probe_records: int = 0
    outlet_records: int = 0
    probe_points: int = 0
    outlet_points: int = 0
    errors: int = 0

    @property
    def points_written(self) -> int:
        return self.probe_points + self.outlet_points
