"""
Local order storage.

Keeps the whole order list as one JSON array under a single key of
a KeyValueStore. The stored format is exactly the Order wire shape,
with no envelope or version tag.

Stored records that cannot be read as an Order (for example an id
that is not an integer) are left out of load() but written back
unchanged by every rewrite, after the readable orders.

Not safe for concurrent callers: every operation is a
read-modify-write of the full list, and the only intended caller is
the single OrderStore that owns this instance.
"""

from __future__ import annotations

import json
import logging

from ..config import DEFAULT_STORAGE_KEY
from ..models import Order, normalize_orders, split_records
from .kv import KeyValueStore

logger = logging.getLogger(__name__)


class LocalOrderStore:
    """Synchronous CRUD over the locally persisted order list."""

    def __init__(self, medium: KeyValueStore, key: str = DEFAULT_STORAGE_KEY) -> None:
        self.medium = medium
        self.key = key

    def load(self) -> list[Order]:
        """Load all orders in stored order.

        Absent or corrupted data yields an empty list. Individual
        records that cannot be normalized are skipped.
        """
        return normalize_orders(self._read_records(), source="local")

    def _read_records(self) -> list:
        raw = self.medium.get(self.key)
        if not raw:
            return []

        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.warning(f"Stored orders under '{self.key}' are not valid JSON, ignoring: {e}")
            return []

        if not isinstance(data, list):
            logger.warning(f"Stored orders under '{self.key}' are not a list, ignoring")
            return []

        return data

    def save_all(self, orders: list[Order]) -> bool:
        """Replace the stored orders, keeping unreadable stored records."""
        _, unreadable = split_records(self._read_records())
        records = [order.to_dict() for order in orders] + unreadable
        payload = json.dumps(records, ensure_ascii=False)
        self.medium.set(self.key, payload)
        return True

    def upsert(self, order: Order) -> bool:
        """Replace the order with a matching id, else append it."""
        orders = self.load()
        for index, existing in enumerate(orders):
            if existing.id == order.id:
                orders[index] = order
                break
        else:
            orders.append(order)
        return self.save_all(orders)

    def update_status(self, order_id: int, status: str) -> bool:
        """Set the status of an order.

        Returns:
            True if an order with that id existed
        """
        orders = self.load()
        for index, existing in enumerate(orders):
            if existing.id == order_id:
                orders[index] = existing.with_status(status)
                self.save_all(orders)
                return True
        return False

    def delete(self, order_id: int) -> bool:
        """Delete an order.

        Returns:
            True if the stored list shrank
        """
        orders = self.load()
        remaining = [order for order in orders if order.id != order_id]
        if len(remaining) < len(orders):
            self.save_all(remaining)
            return True
        return False

    def clear(self) -> bool:
        """Remove the stored list entirely."""
        self.medium.remove(self.key)
        return True

