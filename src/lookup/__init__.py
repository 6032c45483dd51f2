"""
ipwatch Lookup
Public address lookups and the local history of observed addresses
"""

from .client import IPInfoClient, IPSnapshot, IPLookupError
from .history import IPHistory, HistoryEntry

__all__ = [
    'IPInfoClient', 'IPSnapshot', 'IPLookupError',
    'IPHistory', 'HistoryEntry',
]
