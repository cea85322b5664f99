"""
HTTP gateway to the remote order datastore.

The remote exposes a single endpoint with a discriminated ``action``
field. Mutations are POSTed as JSON and answered with
``{"success": bool, "error"?: str}``. The read-all call cannot be
consumed as an ordinary response: the remote wraps its answer in a
call to a caller-supplied callback token (``token({...})``), which
is routed through a CallbackRegistry and bounded by a fixed ceiling.

Every public method converts transport failures, non-2xx statuses
and ``success: false`` payloads into a result object; none of them
raise for remote problems.
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
import time
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

import aiohttp

from ..config import StoreConfig
from ..exceptions import RemoteError, RemoteRejectedError, TransportError, ValidationError
from ..logging_utils import StoreLoggerAdapter
from ..models import Order, normalize_orders
from .callbacks import CallbackRegistry

logger = logging.getLogger(__name__)

MUTATING_ACTIONS = frozenset({"addOrder", "updateStatus", "deleteOrder", "clearAll"})

# token({...}); with optional trailing semicolon
_CALLBACK_RE = re.compile(r"^\s*([A-Za-z_$][\w$]*)\s*\((.*)\)\s*;?\s*$", re.DOTALL)


class FailureKind(Enum):
    """Why a remote call failed."""

    TRANSPORT = "transport"  # Unreachable or timed out
    REJECTED = "rejected"  # Non-2xx status or success=false


@dataclass
class ProbeResult:
    """Outcome of a connectivity probe."""

    reachable: bool
    message: str


@dataclass
class SubmitResult:
    """Outcome of a mutating remote call."""

    ok: bool
    error: str | None = None
    failure: FailureKind | None = None
    message: str | None = None


@dataclass
class FetchResult:
    """Outcome of a read-all call."""

    ok: bool
    orders: list[Order] = field(default_factory=list)
    error: str | None = None
    failure: FailureKind | None = None


def _timestamp() -> str:
    return datetime.now(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _cache_buster() -> str:
    return str(int(time.time() * 1000))


def _decode(text: str) -> Any:
    try:
        return json.loads(text)
    except (json.JSONDecodeError, ValueError):
        return None


def _failure_kind(error: RemoteError) -> FailureKind:
    return FailureKind.TRANSPORT if isinstance(error, TransportError) else FailureKind.REJECTED


def unwrap_callback(text: str) -> tuple[str | None, Any]:
    """Split a callback-wrapped body into (token, payload).

    A bare JSON body is returned with a None token. A body that is
    neither yields (None, None).
    """
    match = _CALLBACK_RE.match(text)
    if match:
        payload = _decode(match.group(2))
        if payload is not None:
            return match.group(1), payload
    return None, _decode(text)


class RemoteGateway:
    """Client for the remote order datastore.

    Example:
        >>> gateway = RemoteGateway(api_url, fetch_timeout=10.0)
        >>> result = await gateway.submit("addOrder", {"order": order.to_dict()})
        >>> if not result.ok:
        ...     print(result.error)
    """

    def __init__(
        self,
        api_url: str,
        request_timeout: float = 15.0,
        fetch_timeout: float = 10.0,
        assume_success_when_missing: bool = True,
        session: aiohttp.ClientSession | None = None,
        callbacks: CallbackRegistry | None = None,
    ) -> None:
        """Initialize the gateway.

        Args:
            api_url: Remote endpoint URL
            request_timeout: Seconds before a single HTTP request times out
            fetch_timeout: Ceiling in seconds for the whole read-all call
            assume_success_when_missing: Treat probe/fetch payloads without
                a ``success`` field as successful
            session: Optional externally owned aiohttp session
            callbacks: Optional registry for read-all tokens
        """
        self.api_url = api_url
        self.request_timeout = request_timeout
        self.fetch_timeout = fetch_timeout
        self.assume_success_when_missing = assume_success_when_missing
        self.callbacks = callbacks or CallbackRegistry()

        self._session = session
        self._owns_session = session is None
        self._log = StoreLoggerAdapter(logger, {"endpoint": api_url})

    @classmethod
    def from_config(cls, config: StoreConfig) -> RemoteGateway:
        """Create a gateway from store configuration."""
        if not config.api_url:
            raise ValidationError("api_url", "is required for a remote gateway")
        return cls(
            api_url=config.api_url,
            request_timeout=config.request_timeout,
            fetch_timeout=config.fetch_timeout,
            assume_success_when_missing=config.assume_success_when_missing,
        )

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.request_timeout),
                headers={"Accept": "application/json"},
            )
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        """Close the HTTP session if this gateway created it."""
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()
        self._session = None

    async def _send(
        self,
        method: str,
        action: str,
        params: dict[str, str] | None = None,
        body: dict[str, Any] | None = None,
    ) -> tuple[int, str]:
        """Perform one HTTP request.

        Raises:
            TransportError: If the remote cannot be reached in time
        """
        session = await self._get_session()
        try:
            async with session.request(method, self.api_url, params=params, json=body) as response:
                return response.status, await response.text(errors="replace")
        except asyncio.TimeoutError as e:
            raise TransportError(f"Request timed out: {action}", action, e) from e
        except aiohttp.ClientError as e:
            raise TransportError(f"Connection error: {e}", action, e) from e

    async def probe(self) -> ProbeResult:
        """Check that the remote answers a ping."""
        try:
            status, text = await self._send(
                "GET", "ping", params={"action": "ping", "t": _cache_buster()}
            )
        except TransportError as e:
            self._log.warning(f"Remote probe failed: {e.message}")
            return ProbeResult(reachable=False, message=e.message)

        if not 200 <= status < 300:
            self._log.warning(f"Remote probe returned HTTP {status}")
            return ProbeResult(reachable=False, message=f"HTTP error: {status}")

        payload = _decode(text)
        if not isinstance(payload, dict):
            payload = {}

        success = payload.get("success")
        if success is None:
            reachable = self.assume_success_when_missing
        else:
            # A 2xx with an explicit falsy flag still counts when assuming success
            reachable = bool(success) or self.assume_success_when_missing

        message = payload.get("message") or (
            "Connected to remote datastore" if reachable else "Remote did not confirm ping"
        )
        return ProbeResult(reachable=reachable, message=str(message))

    async def submit(self, action: str, payload: dict[str, Any]) -> SubmitResult:
        """Perform a mutating call.

        Args:
            action: One of MUTATING_ACTIONS
            payload: Action-specific body fields

        Raises:
            ValidationError: If the action is not a mutating action
        """
        if action not in MUTATING_ACTIONS:
            raise ValidationError("action", "is not a mutating action", action)

        try:
            return await self._submit(action, {"action": action, **payload})
        except RemoteError as e:
            self._log.bind(action=action).warning(f"Remote {action} failed: {e.message}")
            return SubmitResult(ok=False, error=e.message, failure=_failure_kind(e))

    async def _submit(self, action: str, body: dict[str, Any]) -> SubmitResult:
        status, text = await self._send("POST", action, body=body)
        if not 200 <= status < 300:
            raise RemoteRejectedError(f"HTTP {status}", action, status)

        result = _decode(text)
        if not isinstance(result, dict):
            raise RemoteRejectedError("Invalid JSON response", action, status)
        if not result.get("success"):
            raise RemoteRejectedError(str(result.get("error") or "Unknown error"), action, status)

        message = result.get("message")
        return SubmitResult(ok=True, message=str(message) if message else None)

    async def add_order(self, order: Order) -> SubmitResult:
        return await self.submit("addOrder", {"order": order.to_dict(), "timestamp": _timestamp()})

    async def update_status(self, order_id: int, status: str) -> SubmitResult:
        return await self.submit(
            "updateStatus",
            {"orderId": order_id, "status": status, "timestamp": _timestamp()},
        )

    async def delete_order(self, order_id: int) -> SubmitResult:
        return await self.submit("deleteOrder", {"orderId": order_id, "timestamp": _timestamp()})

    async def clear_all(self) -> SubmitResult:
        return await self.submit("clearAll", {"confirm": True})

    async def fetch_all(self) -> list[Order]:
        """Fetch every remote order, or an empty list on any failure."""
        return (await self.fetch_snapshot()).orders

    async def fetch_snapshot(self) -> FetchResult:
        """Fetch every remote order through the callback channel.

        Resolves within fetch_timeout seconds. The callback token is
        registered for this call only and released on every path.
        """
        async with self.callbacks.subscribe() as (token, waiter):
            request = asyncio.create_task(self._request_callback(token))
            try:
                payload = await asyncio.wait_for(waiter, timeout=self.fetch_timeout)
            except asyncio.TimeoutError:
                self._log.warning(f"Remote read timed out after {self.fetch_timeout}s")
                return FetchResult(
                    ok=False,
                    error=f"No response within {self.fetch_timeout}s",
                    failure=FailureKind.TRANSPORT,
                )
            except RemoteError as e:
                self._log.warning(f"Remote read failed: {e.message}")
                return FetchResult(ok=False, error=e.message, failure=_failure_kind(e))
            finally:
                if not request.done():
                    request.cancel()
                    try:
                        await request
                    except asyncio.CancelledError:
                        pass

        return self._parse_fetch_payload(payload)

    async def _request_callback(self, token: str) -> None:
        """Issue the read-all request and route its answer to the registry."""
        params = {"action": "getOrders", "callback": token, "t": _cache_buster()}
        try:
            status, text = await self._send("GET", "getOrders", params=params)
        except TransportError as e:
            self.callbacks.fail(token, e)
            return

        if not 200 <= status < 300:
            self.callbacks.fail(token, RemoteRejectedError(f"HTTP {status}", "getOrders", status))
            return

        name, payload = unwrap_callback(text)
        if payload is None:
            self.callbacks.fail(
                token, RemoteRejectedError("Malformed callback response", "getOrders", status)
            )
            return

        if not self.callbacks.deliver(name or token, payload):
            self._log.debug(f"Dropped response for unknown callback: {name}")

    def _parse_fetch_payload(self, payload: Any) -> FetchResult:
        if not isinstance(payload, dict):
            return FetchResult(
                ok=False, error="Unexpected response shape", failure=FailureKind.REJECTED
            )

        data = payload.get("data")
        success = payload.get("success")
        if success is None:
            accepted = self.assume_success_when_missing and isinstance(data, list)
        else:
            accepted = bool(success)

        if not accepted:
            error = str(payload.get("error") or "Unknown error")
            self._log.warning(f"Remote read rejected: {error}")
            return FetchResult(ok=False, error=error, failure=FailureKind.REJECTED)

        if data is None:
            data = []
        if not isinstance(data, list):
            return FetchResult(
                ok=False, error="Remote data is not a list", failure=FailureKind.REJECTED
            )

        orders = normalize_orders(data, source="remote")
        self._log.info(f"Loaded {len(orders)} orders from remote")
        return FetchResult(ok=True, orders=orders)
