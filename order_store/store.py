"""
Order store with local write-through and best-effort remote mirroring.

Architecture:
- Every mutation commits to local storage first, unconditionally
- The mutation is then mirrored to the remote datastore if it is usable
- A remote failure is reported alongside the result but never turns
  a committed local write into a failure
- Reads merge the remote set over the local set (remote wins per id)
  and persist the merged view locally
- sync_orders() uploads local-only orders one at a time with a pause
  between uploads

Remote usability starts from the static configuration and is
demoted for the rest of the session by a failed probe or a mutating
call that cannot reach the remote. It is never promoted back.

Instances are built by the application and passed to consumers:

    >>> async with OrderStore.create(StoreConfig.from_environment()) as store:
    ...     await store.save_order({"id": 1700000000, "fullName": "Ada"})
    ...     orders = await store.load_all_orders()
"""

from __future__ import annotations

import asyncio
import logging
from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .config import StoreConfig
from .export import write_export
from .local import FileKeyValueStore, LocalOrderStore
from .models import Order, coerce_order_id
from .remote import FailureKind, FetchResult, ProbeResult, RemoteGateway, SubmitResult
from .sync import local_only, merge_orders

logger = logging.getLogger(__name__)


@dataclass
class MutationOutcome:
    """Result of a mutating operation.

    ``success`` always reflects the local result. The remaining
    fields describe the remote attempt, so callers can tell
    "saved and synced" from "saved, not synced" from "not saved".
    """

    success: bool
    local_only: bool = False
    cloud_saved: bool = False
    cloud_updated: bool = False
    cloud_deleted: bool = False
    cloud_cleared: bool = False
    cloud_error: str | None = None
    message: str | None = None

    @property
    def synced(self) -> bool:
        return self.cloud_saved or self.cloud_updated or self.cloud_deleted or self.cloud_cleared

    def to_dict(self) -> dict[str, Any]:
        """Serialize with the client's camelCase keys, omitting unset flags."""
        data: dict[str, Any] = {"success": self.success}
        flags = {
            "localOnly": self.local_only,
            "cloudSaved": self.cloud_saved,
            "cloudUpdated": self.cloud_updated,
            "cloudDeleted": self.cloud_deleted,
            "cloudCleared": self.cloud_cleared,
        }
        data.update({key: True for key, value in flags.items() if value})
        if self.cloud_error is not None:
            data["cloudError"] = self.cloud_error
        if self.message is not None:
            data["message"] = self.message
        return data


@dataclass
class SyncReport:
    """Result of a reconciliation pass.

    A pass that did not run has success=False, a reason, zero counts,
    and for 'fetch_failed' the fetch error in ``error``. Nothing is
    uploaded when the remote orders could not be fetched.

    Attributes:
        success: Whether the pass ran
        reason: Why it did not run: 'cloud_disabled' (remote unusable)
            or 'fetch_failed' (remote orders unavailable)
        uploaded: Local-only orders an upload was attempted for
        failed: Attempted uploads whose remote mirroring did not succeed
        total: Size of the merged view after the pass
    """

    success: bool
    reason: str | None = None
    message: str | None = None
    uploaded: int = 0
    failed: int = 0
    total: int = 0
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"success": self.success}
        if self.success:
            data.update(
                {
                    "uploaded": self.uploaded,
                    "failed": self.failed,
                    "total": self.total,
                }
            )
        for key in ("reason", "message", "error"):
            value = getattr(self, key)
            if value is not None:
                data[key] = value
        return data


@dataclass
class StoreStats:
    """Read-only aggregation over the current view and the local set."""

    total_orders: int
    local_orders: int
    cached_orders: int
    remote_usable: bool
    status_counts: dict[str, int] = field(default_factory=dict)
    local_status_counts: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalOrders": self.total_orders,
            "localOrders": self.local_orders,
            "cachedOrders": self.cached_orders,
            "useCloud": self.remote_usable,
            "statusCounts": dict(self.status_counts),
            "localStatusCounts": dict(self.local_status_counts),
        }


def _count_statuses(orders: list[Order]) -> dict[str, int]:
    return dict(Counter(order.status for order in orders))


class OrderStore:
    """Local-first order store mirroring mutations to a remote datastore.

    Not safe for concurrent use: operations are expected to be awaited
    one at a time by a single owner. Running several stores over the
    same local file needs external coordination.
    """

    def __init__(
        self,
        config: StoreConfig,
        local: LocalOrderStore,
        remote: RemoteGateway | None = None,
    ) -> None:
        """Initialize the store.

        Args:
            config: Store configuration
            local: Local order storage (source of truth for durability)
            remote: Remote gateway, or None to stay local-only
        """
        self.config = config
        self._local = local
        self._remote = remote

        # Optimistic until init() probes; see StoreConfig.probe_on_init
        self._remote_usable = remote is not None and config.remote_configured
        self._cache: list[Order] = []
        self._initialized = False

    @classmethod
    def create(cls, config: StoreConfig | None = None) -> OrderStore:
        """Build a store with file-backed local storage and an HTTP gateway."""
        config = config or StoreConfig.from_environment()
        local = LocalOrderStore(FileKeyValueStore(config.resolved_data_path), config.storage_key)
        remote = RemoteGateway.from_config(config) if config.remote_configured else None
        return cls(config, local, remote)

    async def init(self) -> None:
        """Start the store, probing the remote if configured to."""
        if self._initialized:
            return
        self._initialized = True

        if not self._remote_usable:
            logger.info("Remote datastore not configured, orders are stored locally only")
            return

        logger.info(f"Remote datastore enabled: {self.config.api_url}")
        if self.config.probe_on_init:
            result = await self.test_connection()
            if result.reachable:
                logger.info(f"Remote datastore reachable: {result.message}")

    async def shutdown(self) -> None:
        """Release the remote connection."""
        if self._remote is not None:
            await self._remote.close()
        self._initialized = False

    async def __aenter__(self) -> OrderStore:
        await self.init()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.shutdown()

    @property
    def remote_usable(self) -> bool:
        return self._remote_usable

    @property
    def cached_orders(self) -> list[Order]:
        """The last merged view (empty until a merge has happened)."""
        return list(self._cache)

    def _demote_remote(self, reason: str) -> None:
        if self._remote_usable:
            self._remote_usable = False
            logger.warning(
                f"Remote datastore disabled for this session, orders stay local: {reason}"
            )

    def _record_remote_failure(self, action: str, result: SubmitResult) -> None:
        logger.error(f"Remote {action} failed: {result.error}")
        if result.failure is FailureKind.TRANSPORT:
            self._demote_remote(result.error or "unreachable")

    # Connectivity

    async def test_connection(self) -> ProbeResult:
        """Probe the remote, disabling it for the session if unreachable."""
        if not self._remote_usable or self._remote is None:
            return ProbeResult(reachable=False, message="Remote datastore disabled")

        result = await self._remote.probe()
        if not result.reachable:
            self._demote_remote(result.message)
        return result

    async def check_remote_availability(self) -> bool:
        """Probe the remote without changing its usability."""
        if not self._remote_usable or self._remote is None:
            return False
        return (await self._remote.probe()).reachable

    # Reads

    async def load_all_orders(self) -> list[Order]:
        """Return the merged view, or the local set when the remote is unusable."""
        orders, _ = await self._refresh(self._local.load())
        return orders

    async def _refresh(self, local_orders: list[Order]) -> tuple[list[Order], FetchResult | None]:
        """Merge the remote set over local_orders and persist the result.

        Returns the view plus the remote snapshot (None when the
        remote was not consulted).
        """
        if not self._remote_usable or self._remote is None:
            logger.debug(f"Loaded {len(local_orders)} local orders")
            return local_orders, None

        snapshot = await self._remote.fetch_snapshot()
        if not snapshot.ok or not snapshot.orders:
            return local_orders, snapshot

        merged = merge_orders(snapshot.orders, local_orders)
        self._local.save_all(merged)
        self._cache = merged
        return merged, snapshot

    # Mutations

    async def save_order(self, order: Order | dict[str, Any]) -> MutationOutcome:
        """Create or replace an order locally, then mirror it remotely."""
        order = Order.coerce(order)
        self._local.upsert(order)

        if not self._remote_usable or self._remote is None:
            logger.info(f"Order #{order.id} saved locally only")
            return MutationOutcome(success=True, local_only=True)

        result = await self._remote.add_order(order)
        if result.ok:
            logger.info(f"Order #{order.id} saved to remote datastore")
            return MutationOutcome(success=True, cloud_saved=True)

        self._record_remote_failure("addOrder", result)
        return MutationOutcome(success=True, local_only=True, cloud_error=result.error)

    async def update_order_status(self, order_id: int | str, status: str) -> MutationOutcome:
        """Set an order's status locally, then mirror it remotely.

        ``success`` is False when no local order has that id.
        """
        order_id = coerce_order_id(order_id)
        updated = self._local.update_status(order_id, status)

        if not self._remote_usable or self._remote is None:
            return MutationOutcome(success=updated, local_only=True)

        result = await self._remote.update_status(order_id, status)
        if result.ok:
            logger.info(f"Order #{order_id} status set to '{status}' in remote datastore")
            return MutationOutcome(success=updated, cloud_updated=True)

        self._record_remote_failure("updateStatus", result)
        return MutationOutcome(success=updated, local_only=True, cloud_error=result.error)

    async def delete_order(self, order_id: int | str) -> MutationOutcome:
        """Delete an order locally, then mirror the delete remotely.

        ``success`` is False when no local order had that id.
        """
        order_id = coerce_order_id(order_id)
        deleted = self._local.delete(order_id)

        if not self._remote_usable or self._remote is None:
            return MutationOutcome(success=deleted, local_only=True)

        result = await self._remote.delete_order(order_id)
        if result.ok:
            logger.info(f"Order #{order_id} deleted from remote datastore")
            return MutationOutcome(success=deleted, cloud_deleted=True)

        self._record_remote_failure("deleteOrder", result)
        return MutationOutcome(success=deleted, local_only=True, cloud_error=result.error)

    async def clear_all_orders(self, confirm: bool = False) -> MutationOutcome:
        """Remove every order locally and, if usable, remotely.

        Does nothing unless confirm is True. Local clearing is kept
        even when the remote clear fails.
        """
        if not confirm:
            return MutationOutcome(success=False, message="Confirmation required")

        self._local.clear()
        self._cache = []

        if not self._remote_usable or self._remote is None:
            return MutationOutcome(success=True, local_only=True, message="Local orders cleared")

        result = await self._remote.clear_all()
        if result.ok:
            return MutationOutcome(
                success=True,
                cloud_cleared=True,
                message=result.message or "All orders cleared",
            )

        self._record_remote_failure("clearAll", result)
        return MutationOutcome(
            success=True,
            cloud_error=result.error,
            message="Local orders cleared, remote orders kept",
        )

    # Reconciliation

    async def sync_orders(self) -> SyncReport:
        """Upload local orders missing from the remote, then reload.

        Uploads run one at a time with config.sync_delay seconds
        between them. A failed upload is logged and the pass goes on.
        """
        if not self._remote_usable or self._remote is None:
            logger.info("Sync skipped: remote datastore disabled")
            return SyncReport(success=False, reason="cloud_disabled")

        logger.info("Sync started")
        local_orders = self._local.load()
        _, snapshot = await self._refresh(local_orders)
        if snapshot is None or not snapshot.ok:
            error = snapshot.error if snapshot is not None else "remote datastore disabled"
            logger.warning(f"Sync aborted, remote orders unavailable: {error}")
            return SyncReport(success=False, reason="fetch_failed", error=error)

        pending = local_only(local_orders, snapshot.orders)
        logger.info(
            f"Sync: {len(snapshot.orders)} remote, {len(local_orders)} local, "
            f"{len(pending)} to upload"
        )

        uploaded = 0
        failed = 0
        for index, order in enumerate(pending):
            if index:
                await asyncio.sleep(self.config.sync_delay)
            uploaded += 1
            try:
                outcome = await self.save_order(order)
            except Exception as e:
                logger.warning(f"Could not upload order #{order.id}: {e}")
                failed += 1
                continue
            if not outcome.cloud_saved:
                failed += 1

        final_orders = await self.load_all_orders()
        logger.info(f"Sync finished: uploaded {uploaded}, total {len(final_orders)}")
        return SyncReport(
            success=True,
            message=f"Sync complete. Uploaded: {uploaded}. Total: {len(final_orders)}",
            uploaded=uploaded,
            failed=failed,
            total=len(final_orders),
        )

    # Queries

    def get_stats(self) -> StoreStats:
        """Per-status counts for the current view and the local set."""
        local_orders = self._local.load()
        current = self._cache if self._cache else local_orders
        return StoreStats(
            total_orders=len(current),
            local_orders=len(local_orders),
            cached_orders=len(self._cache),
            remote_usable=self._remote_usable,
            status_counts=_count_statuses(current),
            local_status_counts=_count_statuses(local_orders),
        )

    async def export_to_file(
        self,
        fmt: str = "json",
        directory: Path | str | None = None,
    ) -> Path | None:
        """Write the current view to a dated JSON or CSV file.

        Returns:
            Path of the written file, or None if there is nothing to export
        """
        orders = self._cache if self._cache else self._local.load()
        if not orders:
            return None
        return await write_export(orders, Path(directory) if directory else Path.cwd(), fmt)
