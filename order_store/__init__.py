"""
Order Store

Local-first order storage with best-effort mirroring to a remote
HTTP datastore.

Provides:
- Write-through local persistence that never depends on the remote
- Remote mirroring of creates, status updates, deletes and clears
- Remote-priority merge of remote and local order sets
- Reconciliation that uploads local-only orders
- JSON/CSV export

Usage:

    >>> from order_store import OrderStore, StoreConfig
    >>> config = StoreConfig.from_environment()
    >>> async with OrderStore.create(config) as store:
    ...     outcome = await store.save_order({"id": 1700000000, "fullName": "Ada"})
    ...     if outcome.cloud_error:
    ...         print("saved, but not synced:", outcome.cloud_error)
    ...     report = await store.sync_orders()
"""

from .config import StoreConfig
from .exceptions import (
    OrderStoreError,
    RemoteError,
    RemoteRejectedError,
    StorageIOError,
    TransportError,
    ValidationError,
)
from .export import ExportFile, build_export, write_export
from .local import FileKeyValueStore, KeyValueStore, LocalOrderStore, MemoryKeyValueStore
from .models import Order
from .remote import (
    CallbackRegistry,
    FailureKind,
    FetchResult,
    ProbeResult,
    RemoteGateway,
    SubmitResult,
)
from .store import MutationOutcome, OrderStore, StoreStats, SyncReport
from .sync import merge_orders

__all__ = [
    # Core
    "OrderStore",
    "StoreConfig",
    "Order",
    "MutationOutcome",
    "SyncReport",
    "StoreStats",
    "merge_orders",
    # Local
    "KeyValueStore",
    "FileKeyValueStore",
    "MemoryKeyValueStore",
    "LocalOrderStore",
    # Remote
    "RemoteGateway",
    "CallbackRegistry",
    "ProbeResult",
    "SubmitResult",
    "FetchResult",
    "FailureKind",
    # Export
    "ExportFile",
    "build_export",
    "write_export",
    # Exceptions
    "OrderStoreError",
    "ValidationError",
    "StorageIOError",
    "RemoteError",
    "TransportError",
    "RemoteRejectedError",
]

__version__ = "0.1.0"
