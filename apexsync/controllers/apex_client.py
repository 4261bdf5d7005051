"""Apex controller HTTP client

Reads the controller's datalog (probe history), outlog (outlet state changes)
and status.json (current snapshot of every input and output).
"""

import asyncio
import json
import logging
import math
import xml.etree.ElementTree as ET
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, Optional

import requests

from ..config import ApexSettings, SyncSettings
from ..models import (
    ApexDatalog,
    ApexOutlog,
    ApexOutletRecord,
    ApexProbe,
    ApexRecord,
    ApexStatus,
    CoverageResult,
)
from ..sync.range_scanner import ChunkedRangeScanner

logger = logging.getLogger(__name__)


class ApexRequestError(Exception):
    """Non-2xx response from the controller"""

    def __init__(self, message: str, status_code: int):
        super().__init__(message)
        self.status_code = status_code


def _text(element: Optional[ET.Element], tag: str, default: str = "") -> str:
    if element is None:
        return default
    child = element.find(tag)
    if child is None or child.text is None:
        return default
    return child.text.strip()


def _to_float(raw, default: float = math.nan) -> float:
    try:
        return float(raw)
    except (TypeError, ValueError):
        return default


class ApexClient:
    """Client for a Neptune Apex controller"""

    def __init__(self, settings: ApexSettings):
        self.base_url = f"http://{settings.host}"
        self.timeout = settings.timeout_s
        self.auth = None
        if settings.username and settings.password:
            self.auth = (settings.username, settings.password)
        self._configured_timezone = settings.timezone_offset
        self._learned_timezone: Optional[float] = None

    @property
    def timezone_offset(self) -> Optional[float]:
        """Controller timezone in hours east of UTC, if known"""
        if self._configured_timezone is not None:
            return self._configured_timezone
        return self._learned_timezone

    def format_apex_date(self, date: datetime) -> str:
        """Format a datetime as the controller's ``sdate`` (YYMMDDHHMM).

        Naive datetimes are taken as controller-local already. Aware ones are
        converted to the controller's zone when known, else to process local.
        """
        if date.tzinfo is not None:
            offset = self.timezone_offset
            if offset is not None:
                date = date.astimezone(timezone(timedelta(hours=offset)))
            else:
                date = date.astimezone()
        return date.strftime("%y%m%d%H%M")

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    def _get_sync(self, path: str, params: Optional[dict], accept: str, what: str) -> str:
        response = requests.get(
            f"{self.base_url}{path}",
            params=params,
            headers={"Accept": accept},
            auth=self.auth,
            timeout=self.timeout,
        )
        if not response.ok:
            raise ApexRequestError(
                f"Failed to fetch Apex {what}: {response.status_code} {response.reason}",
                response.status_code,
            )
        return response.text

    async def _get(self, path: str, params: Optional[dict], accept: str, what: str) -> str:
        return await asyncio.to_thread(self._get_sync, path, params, accept, what)

    def _range_params(self, start: datetime, days: int) -> dict:
        return {"sdate": self.format_apex_date(start), "days": days}

    # ------------------------------------------------------------------
    # Datalog (probes)
    # ------------------------------------------------------------------

    async def fetch_datalog(self, minimal: bool = False) -> ApexDatalog:
        """Fetch the datalog. ``minimal`` asks for today's records only."""
        params = {"days": 0} if minimal else None
        xml_text = await self._get("/cgi-bin/datalog.xml", params, "application/xml", "datalog")
        return self.parse_datalog(xml_text)

    async def fetch_historical_datalog(self, start: datetime, days: int) -> ApexDatalog:
        """Fetch ``days`` days of datalog starting at ``start``"""
        xml_text = await self._get(
            "/cgi-bin/datalog.xml",
            self._range_params(start, days),
            "application/xml",
            "historical datalog",
        )
        return self.parse_datalog(xml_text)

    def parse_datalog(self, xml_text: str) -> ApexDatalog:
        root = ET.fromstring(xml_text)
        records = []
        for record_el in root.findall("record"):
            probes = [
                ApexProbe(
                    name=_text(probe_el, "name"),
                    type=_text(probe_el, "type"),
                    value=_to_float(_text(probe_el, "value", None)),
                )
                for probe_el in record_el.findall("probe")
            ]
            records.append(ApexRecord(date=_text(record_el, "date"), probes=probes))

        datalog = ApexDatalog(
            hostname=_text(root, "hostname"),
            software=root.get("software", ""),
            hardware=root.get("hardware", ""),
            serial=_text(root, "serial"),
            timezone=_to_float(_text(root, "timezone", None), 0.0),
            records=records,
        )
        self._learned_timezone = datalog.timezone
        return datalog

    # ------------------------------------------------------------------
    # Outlog (outlet state changes)
    # ------------------------------------------------------------------

    async def fetch_outlog(self, minimal: bool = False) -> ApexOutlog:
        params = {"days": 0} if minimal else None
        xml_text = await self._get("/cgi-bin/outlog.xml", params, "application/xml", "outlog")
        return self.parse_outlog(xml_text)

    async def fetch_historical_outlog(self, start: datetime, days: int) -> ApexOutlog:
        xml_text = await self._get(
            "/cgi-bin/outlog.xml",
            self._range_params(start, days),
            "application/xml",
            "historical outlog",
        )
        return self.parse_outlog(xml_text)

    def parse_outlog(self, xml_text: str) -> ApexOutlog:
        root = ET.fromstring(xml_text)
        records = [
            ApexOutletRecord(
                date=_text(record_el, "date"),
                name=_text(record_el, "name"),
                value=_text(record_el, "value"),
            )
            for record_el in root.findall("record")
        ]
        outlog = ApexOutlog(
            hostname=_text(root, "hostname"),
            software=root.get("software", ""),
            hardware=root.get("hardware", ""),
            serial=_text(root, "serial"),
            timezone=_to_float(_text(root, "timezone", None), 0.0),
            records=records,
        )
        self._learned_timezone = outlog.timezone
        return outlog

    # ------------------------------------------------------------------
    # status.json (current snapshot)
    # ------------------------------------------------------------------

    async def fetch_status(self) -> ApexStatus:
        text = await self._get("/cgi-bin/status.json", None, "application/json", "status")
        return self.parse_status(text)

    def parse_status(self, text: str) -> ApexStatus:
        data = json.loads(text)
        # Firmware wraps the snapshot in an "istat" object
        if isinstance(data, dict) and "istat" in data:
            data = data["istat"]
        return ApexStatus.model_validate(data)

    # ------------------------------------------------------------------
    # Coverage
    # ------------------------------------------------------------------

    async def fetch_coverage_scan(
        self,
        on_chunk: Optional[Callable[[ApexDatalog], Awaitable[None]]] = None,
        settings: Optional[SyncSettings] = None,
    ) -> CoverageResult:
        """Scan the retained history in chunks and report coverage.

        Window and chunk sizes come from ``settings.scan_days`` and
        ``settings.scan_chunk_days`` (defaults when omitted).
        """
        settings = settings or SyncSettings()
        scanner = ChunkedRangeScanner(
            self,
            total_days=settings.scan_days,
            chunk_days=settings.scan_chunk_days,
        )
        return await scanner.scan(on_chunk)
