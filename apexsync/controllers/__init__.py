"""Controllers package for the Apex controller"""

from .apex_client import ApexClient, ApexRequestError

__all__ = [
    'ApexClient',
    'ApexRequestError',
]
