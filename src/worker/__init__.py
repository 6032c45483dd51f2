"""
ipwatch Worker
Offline caching and request routing: classify, pick a strategy, manage cache versions
"""

from .classifier import Classification, RequestClassifier, RequestKind, classify_url
from .config import LookupConfig, WorkerConfig, load_config
from .errors import InstallError, LifecycleError, NetworkError, WorkerError
from .fetcher import Fetcher
from .lifecycle import LifecycleController, Registration, WorkerState
from .messaging import Client, ClientRegistry, MessageBridge
from .reconcile import IPReconciler
from .service_worker import ServiceWorker
from .strategies import CacheFirst, NetworkFirst, StaleWhileRevalidate, Strategy

__all__ = [
    'Classification', 'RequestClassifier', 'RequestKind', 'classify_url',
    'LookupConfig', 'WorkerConfig', 'load_config',
    'InstallError', 'LifecycleError', 'NetworkError', 'WorkerError',
    'Fetcher',
    'LifecycleController', 'Registration', 'WorkerState',
    'Client', 'ClientRegistry', 'MessageBridge',
    'IPReconciler',
    'ServiceWorker',
    'CacheFirst', 'NetworkFirst', 'StaleWhileRevalidate', 'Strategy',
]
