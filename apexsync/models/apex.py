"""Apex controller data models"""

from dataclasses import dataclass, field, asdict
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


@dataclass
class ApexProbe:
    """Single probe reading inside a datalog record"""
    name: str
    type: str  # "Temp", "pH", "ORP", "Cond", ...
    value: float  # NaN for disconnected/unconfigured probes


@dataclass
class ApexRecord:
    """One datalog record (all probes at one instant)"""
    date: str  # "MM/DD/YYYY HH:MM:SS", controller local time
    probes: list[ApexProbe] = field(default_factory=list)

    def to_dict(self):
        """Convert to dictionary"""
        return asdict(self)


@dataclass
class ApexDatalog:
    """Parsed datalog.xml response"""
    hostname: str
    software: str = ""
    hardware: str = ""
    serial: str = ""
    timezone: float = 0.0  # hours east of UTC
    records: list[ApexRecord] = field(default_factory=list)


@dataclass
class ApexOutletRecord:
    """One outlog state change"""
    date: str
    name: str
    value: str  # "ON" / "OFF"


@dataclass
class ApexOutlog:
    """Parsed outlog.xml response"""
    hostname: str
    software: str = ""
    hardware: str = ""
    serial: str = ""
    timezone: float = 0.0
    records: list[ApexOutletRecord] = field(default_factory=list)


class ApexStatusInput(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    did: str = ""
    type: str
    name: str
    value: float


class ApexStatusOutput(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    did: str = ""
    type: str
    name: str
    gid: str = ""
    id: Optional[int] = Field(None, alias="ID")
    # [state, ?, health, ?] e.g. ["AON", "", "OK", ""]
    status: list[str] = Field(default_factory=list)
    intensity: Optional[float] = None


class ApexStatus(BaseModel):
    """Parsed status.json snapshot (no per-entry timestamps)"""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    hostname: str
    software: str = ""
    hardware: str = ""
    serial: str = ""
    type: str = ""
    timezone: float = 0.0
    date: Optional[int] = None
    inputs: list[ApexStatusInput] = Field(default_factory=list)
    outputs: list[ApexStatusOutput] = Field(default_factory=list)
