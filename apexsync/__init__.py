"""apexsync - Neptune Apex to InfluxDB logger"""

__version__ = "0.3.0"
