"""
ipwatch Cache Store
Named response partitions keyed by request identity
"""

from .http import Request, Response
from .keys import request_key, resolve_url
from .store import CachePartition, CacheStore, CacheStoreError

__all__ = [
    'Request', 'Response',
    'request_key', 'resolve_url',
    'CacheStore', 'CachePartition', 'CacheStoreError',
]
