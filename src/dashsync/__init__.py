"""dashsync - client-side data synchronization for the dashboard API."""

from contextlib import suppress

# Activity badges
from dashsync.activity import TRACKED_KEYS, ActivityPoller, compute_has_new

# Cache and client
from dashsync.cache import CacheStore
from dashsync.client import ApiClient, request_key
from dashsync.config import Settings

# Duration parsing
from dashsync.duration import parse_duration
from dashsync.fetch import FetchState, OptimizedFetch

# Notification counters
from dashsync.notifications import (
    ROUTE_TYPES,
    NotificationCounts,
    NotificationPoller,
    NotificationType,
)
from dashsync.scheduler import PeriodicTask
from dashsync.session import Session
from dashsync.storage import (
    JsonFileStore,
    MemoryStore,
    PersistentStore,
    StorageError,
)
from dashsync.throttle import RequestThrottle

# Core types
from dashsync.types import (
    CacheEntry,
    Duration,
    ErrorKind,
    ResponseEnvelope,
)

# Optional stores - only available when dependencies are installed
with suppress(ImportError):
    from dashsync.storage import RedisStore

__version__ = "0.1.0"

__all__ = [
    "ROUTE_TYPES",
    "TRACKED_KEYS",
    "ActivityPoller",
    "ApiClient",
    "CacheEntry",
    "CacheStore",
    "Duration",
    "ErrorKind",
    "FetchState",
    "JsonFileStore",
    "MemoryStore",
    "NotificationCounts",
    "NotificationPoller",
    "NotificationType",
    "OptimizedFetch",
    "PeriodicTask",
    "PersistentStore",
    "RedisStore",
    "RequestThrottle",
    "ResponseEnvelope",
    "Session",
    "Settings",
    "StorageError",
    "compute_has_new",
    "parse_duration",
    "request_key",
]
