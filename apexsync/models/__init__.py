"""Models package"""

from .apex import (
    ApexProbe,
    ApexRecord,
    ApexDatalog,
    ApexOutletRecord,
    ApexOutlog,
    ApexStatus,
    ApexStatusInput,
    ApexStatusOutput,
)
from .coverage import CoverageResult, SyncReport, BackfillReport

__all__ = [
    'ApexProbe',
    'ApexRecord',
    'ApexDatalog',
    'ApexOutletRecord',
    'ApexOutlog',
    'ApexStatus',
    'ApexStatusInput',
    'ApexStatusOutput',
    'CoverageResult',
    'SyncReport',
    'BackfillReport',
]
