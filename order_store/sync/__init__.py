"""Merge and reconciliation helpers for local and remote order sets."""

from .merge import local_only, merge_orders

__all__ = ["merge_orders", "local_only"]
