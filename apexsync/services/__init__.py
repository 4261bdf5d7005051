"""Services package"""

from .diagnostics import DiagnosticsService

__all__ = ['DiagnosticsService']
