"""Map Apex records and snapshots to InfluxDB points

Measurements:
    apex_probe   tags host, name, probe_type    field value (float)
    apex_outlet  tags host, name[, type]        field state (int, 1=on 0=off)
    apex_input   tags host, name, type          field value (float)
"""

import logging
import math
from datetime import datetime, timedelta, timezone
from typing import Iterable, TypeVar, Union

from influxdb_client_3 import Point

from ..models import (
    ApexDatalog,
    ApexOutlog,
    ApexOutletRecord,
    ApexRecord,
    ApexStatus,
    ApexStatusOutput,
)

logger = logging.getLogger(__name__)

R = TypeVar("R", bound=Union[ApexRecord, ApexOutletRecord])

PROBE_MEASUREMENT = "apex_probe"
OUTLET_MEASUREMENT = "apex_outlet"
INPUT_MEASUREMENT = "apex_input"

APEX_DATE_FORMAT = "%m/%d/%Y %H:%M:%S"

# Output states that mean the output is physically running
ON_STATES = ("ON", "AON")


def parse_apex_date(date_str: str, timezone_offset: float) -> datetime:
    """Parse "MM/DD/YYYY HH:MM:SS" controller-local time into a UTC datetime.

    ``timezone_offset`` is the controller's offset in hours east of UTC, as
    reported in the datalog. The process's own timezone is never consulted.
    """
    local = datetime.strptime(date_str.strip(), APEX_DATE_FORMAT)
    return (local - timedelta(hours=timezone_offset)).replace(tzinfo=timezone.utc)


def timed_records(records: Iterable[R], timezone_offset: float) -> list[tuple[datetime, R]]:
    """Pair records with their UTC instant, oldest first.

    Records whose date cannot be parsed are dropped with a warning. The sort
    is stable, so records sharing an instant keep their source order.
    """
    timed = []
    for record in records:
        try:
            timed.append((parse_apex_date(record.date, timezone_offset), record))
        except ValueError:
            logger.warning(f"Skipping record with unparseable date {record.date!r}")
    timed.sort(key=lambda item: item[0])
    return timed


def map_record_to_points(record: ApexRecord, hostname: str, timezone_offset: float) -> list[Point]:
    """One point per probe; NaN/Inf probes (disconnected sensors) are dropped"""
    timestamp = parse_apex_date(record.date, timezone_offset)
    return [
        Point(PROBE_MEASUREMENT)
        .tag("host", hostname)
        .tag("name", probe.name)
        .tag("probe_type", probe.type)
        .field("value", float(probe.value))
        .time(timestamp)
        for probe in record.probes
        if math.isfinite(probe.value)
    ]


def map_datalog_to_points(datalog: ApexDatalog) -> list[Point]:
    """Points for the most recent record only (current values)"""
    if not datalog.records:
        return []
    return map_record_to_points(datalog.records[-1], datalog.hostname, datalog.timezone)


def map_all_records_to_points(datalog: ApexDatalog) -> list[Point]:
    """Points for every record, in record order (used for backfill)"""
    points = []
    for record in datalog.records:
        points.extend(map_record_to_points(record, datalog.hostname, datalog.timezone))
    return points


def map_outlet_record_to_point(record: ApexOutletRecord, hostname: str, timezone_offset: float) -> Point:
    timestamp = parse_apex_date(record.date, timezone_offset)
    state = 1 if record.value == "ON" else 0
    return (
        Point(OUTLET_MEASUREMENT)
        .tag("host", hostname)
        .tag("name", record.name)
        .field("state", state)
        .time(timestamp)
    )


def map_outlog_to_points(outlog: ApexOutlog) -> list[Point]:
    """Point for the most recent outlet state change only"""
    if not outlog.records:
        return []
    return [map_outlet_record_to_point(outlog.records[-1], outlog.hostname, outlog.timezone)]


def map_all_outlog_to_points(outlog: ApexOutlog) -> list[Point]:
    return [
        map_outlet_record_to_point(record, outlog.hostname, outlog.timezone)
        for record in outlog.records
    ]


def _output_state(output: ApexStatusOutput) -> int:
    state = output.status[0] if output.status else ""
    return 1 if state in ON_STATES else 0


def map_status_to_outlet_points(status: ApexStatus, timestamp: datetime) -> list[Point]:
    """One apex_outlet point per output, all sharing the fetch timestamp.

    status.json has no per-output time, so the caller supplies it. The type tag
    is stored verbatim (e.g. "MXMPump|Ecotech|Vortech").
    """
    return [
        Point(OUTLET_MEASUREMENT)
        .tag("host", status.hostname)
        .tag("name", output.name)
        .tag("type", output.type)
        .field("state", _output_state(output))
        .time(timestamp)
        for output in status.outputs
    ]


def map_status_to_input_points(status: ApexStatus, timestamp: datetime) -> list[Point]:
    """One apex_input point per input (FMM float switches, voltages, ...)"""
    return [
        Point(INPUT_MEASUREMENT)
        .tag("host", status.hostname)
        .tag("name", item.name)
        .tag("type", item.type)
        .field("value", float(item.value))
        .time(timestamp)
        for item in status.inputs
        if math.isfinite(item.value)
    ]
