"""
Remote datastore access.

Example:
    >>> from order_store.remote import RemoteGateway
    >>> gateway = RemoteGateway("https://script.google.com/macros/s/<id>/exec")
    >>> probe = await gateway.probe()
    >>> orders = await gateway.fetch_all()
    >>> await gateway.close()
"""

from .callbacks import CallbackRegistry
from .gateway import (
    MUTATING_ACTIONS,
    FailureKind,
    FetchResult,
    ProbeResult,
    RemoteGateway,
    SubmitResult,
)

__all__ = [
    "CallbackRegistry",
    "RemoteGateway",
    "ProbeResult",
    "SubmitResult",
    "FetchResult",
    "FailureKind",
    "MUTATING_ACTIONS",
]
