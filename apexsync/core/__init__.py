"""Core package"""

from .server import SyncServer

__all__ = ['SyncServer']
