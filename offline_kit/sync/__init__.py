"""
Sync Layer.

The durable operation queue, its event model and the connectivity providers
that drive automatic sync passes.
"""

from .connectivity import (
    ConnectivityProvider,
    HttpConnectivityMonitor,
    ManualConnectivity,
)
from .events import EventEmitter, SyncEvent, SyncEventType
from .queue import SyncHandler, SyncQueue

__all__ = [
    "ConnectivityProvider",
    "EventEmitter",
    "HttpConnectivityMonitor",
    "ManualConnectivity",
    "SyncEvent",
    "SyncEventType",
    "SyncHandler",
    "SyncQueue",
]
