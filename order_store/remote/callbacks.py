"""
One-shot callback registry for the read-all channel.

The remote answers the read-all request by calling back a named
token rather than through an ordinary response body. Each call
registers a fresh token, waits for exactly one delivery, and drops
the token again whether it was delivered, failed, or timed out.
"""

from __future__ import annotations

import asyncio
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any


class CallbackRegistry:
    """Pending one-shot callbacks keyed by token.

    A token is removed from the registry exactly once: by deliver(),
    fail(), or release(), whichever comes first. Later calls for the
    same token are no-ops and return False.
    """

    def __init__(self, prefix: str = "orders_callback") -> None:
        self.prefix = prefix
        self._pending: dict[str, asyncio.Future[Any]] = {}

    def __contains__(self, token: object) -> bool:
        return token in self._pending

    def __len__(self) -> int:
        return len(self._pending)

    def register(self) -> tuple[str, asyncio.Future[Any]]:
        """Register a new token and return it with its waiter future."""
        token = f"{self.prefix}_{uuid.uuid4().hex}"
        while token in self._pending:
            token = f"{self.prefix}_{uuid.uuid4().hex}"

        waiter: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        self._pending[token] = waiter
        return token, waiter

    def deliver(self, token: str, payload: Any) -> bool:
        """Resolve a pending token with a payload."""
        waiter = self._pending.pop(token, None)
        if waiter is None or waiter.done():
            return False
        waiter.set_result(payload)
        return True

    def fail(self, token: str, error: BaseException) -> bool:
        """Resolve a pending token with an error."""
        waiter = self._pending.pop(token, None)
        if waiter is None or waiter.done():
            return False
        waiter.set_exception(error)
        return True

    def release(self, token: str) -> bool:
        """Drop a token without delivering, cancelling its waiter."""
        waiter = self._pending.pop(token, None)
        if waiter is None:
            return False
        if not waiter.done():
            waiter.cancel()
        return True

    @asynccontextmanager
    async def subscribe(self) -> AsyncIterator[tuple[str, asyncio.Future[Any]]]:
        """Register a token for the duration of the block."""
        token, waiter = self.register()
        try:
            yield token, waiter
        finally:
            self.release(token)
