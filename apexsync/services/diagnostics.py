"""Diagnostics service - track operational metrics"""

import logging
from datetime import datetime
from typing import Optional

from ..models import BackfillReport, SyncReport

logger = logging.getLogger(__name__)


class DiagnosticsService:
    """Lightweight counters for the polling loop and background sync"""

    def __init__(self):
        """Initialize diagnostics tracker"""
        self.start_time = datetime.now()
        self.counters = {
            'polls': 0,
            'poll_errors': 0,
            'points_written': 0,
            'backfill_points': 0,
            'reconcile_points': 0,
            'total_errors': 0,
        }
        self.last_poll: Optional[datetime] = None
        self.last_sync_status: Optional[str] = None
        self.last_coverage_percent: Optional[float] = None
        logger.info("Diagnostics service initialized")

    def record_poll(self, points_written: int):
        """Record a successful poll tick"""
        self.counters['polls'] += 1
        self.counters['points_written'] += points_written
        self.last_poll = datetime.now()

    def record_error(self, error_type: str):
        """Record an error

        Args:
            error_type: 'poll' or 'general'
        """
        self.counters['total_errors'] += 1
        if error_type == 'poll':
            self.counters['poll_errors'] += 1

    def record_backfill(self, report: BackfillReport):
        self.counters['backfill_points'] += report.points_written
        self.counters['points_written'] += report.points_written
        self.counters['total_errors'] += report.errors

    def record_sync(self, report: SyncReport):
        self.counters['reconcile_points'] += report.points_written
        self.counters['points_written'] += report.points_written
        self.last_sync_status = report.status
        if report.coverage is not None:
            self.last_coverage_percent = report.coverage.coverage_percent
        if report.status in ("error", "scan_limit"):
            self.counters['total_errors'] += 1

    def get_uptime_seconds(self) -> int:
        """Get uptime in seconds"""
        return int((datetime.now() - self.start_time).total_seconds())

    def get_uptime_formatted(self) -> str:
        """Get uptime as formatted string"""
        seconds = self.get_uptime_seconds()
        hours = seconds // 3600
        minutes = (seconds % 3600) // 60
        return f"{hours}h {minutes}m"

    def get_error_rate(self) -> float:
        """Get poll error rate as percentage of poll attempts"""
        attempts = self.counters['polls'] + self.counters['poll_errors']
        if attempts == 0:
            return 0.0
        return (self.counters['poll_errors'] / attempts) * 100

    def get_health_summary(self) -> dict:
        """Get health summary

        Returns:
            dict with health status and key metrics
        """
        error_rate = self.get_error_rate()

        if self.counters['polls'] == 0 and self.counters['poll_errors'] > 0:
            status = "offline"
        elif error_rate > 5.0:
            status = "degraded"
        else:
            status = "healthy"

        return {
            'status': status,
            'uptime_seconds': self.get_uptime_seconds(),
            'uptime_formatted': self.get_uptime_formatted(),
            'polls': self.counters['polls'],
            'poll_errors': self.counters['poll_errors'],
            'points_written': self.counters['points_written'],
            'backfill_points': self.counters['backfill_points'],
            'reconcile_points': self.counters['reconcile_points'],
            'total_errors': self.counters['total_errors'],
            'error_rate_percent': round(error_rate, 2),
            'last_poll': self.last_poll.isoformat() if self.last_poll else None,
            'last_sync_status': self.last_sync_status,
            'last_coverage_percent': self.last_coverage_percent,
            'timestamp': datetime.now().isoformat(),
        }

    def log_summary(self):
        """Log current health summary to logger"""
        summary = self.get_health_summary()
        logger.info(
            f"Health Summary - Status: {summary['status']}, "
            f"Uptime: {summary['uptime_formatted']}, "
            f"Polls: {summary['polls']}, "
            f"Points: {summary['points_written']}, "
            f"Errors: {summary['total_errors']}, "
            f"Error Rate: {summary['error_rate_percent']}%"
        )
