# Storage module - InfluxDB points and writes
from .influx_store import InfluxStore, ScanLimitExceeded, is_scan_limit_error
from . import mapper

__all__ = ['InfluxStore', 'ScanLimitExceeded', 'is_scan_limit_error', 'mapper']
