"""
Merging of remote and local order sets.

The remote copy wins for any id present remotely; local orders are
pure additions on top of the remote baseline. Within a single input
list a repeated id resolves to its last occurrence.
"""

from __future__ import annotations

from collections.abc import Iterable

from ..models import Order


def _index_by_id(orders: Iterable[Order]) -> dict[int, Order]:
    """Map id -> order, later occurrences replacing earlier ones."""
    indexed: dict[int, Order] = {}
    for order in orders:
        indexed[order.id] = order
    return indexed


def merge_orders(remote_orders: Iterable[Order], local_orders: Iterable[Order]) -> list[Order]:
    """Combine remote and local orders into one view, newest id first.

    Args:
        remote_orders: Orders fetched from the remote datastore
        local_orders: Orders held in local storage

    Returns:
        Orders with unique ids, sorted by id descending
    """
    merged = _index_by_id(remote_orders)
    for order_id, order in _index_by_id(local_orders).items():
        if order_id not in merged:
            merged[order_id] = order

    return sorted(merged.values(), key=lambda order: order.id, reverse=True)


def local_only(local_orders: Iterable[Order], remote_orders: Iterable[Order]) -> list[Order]:
    """Local orders whose id is absent from the remote set, in local order."""
    remote_ids = {order.id for order in remote_orders}
    return [order for order in local_orders if order.id not in remote_ids]
