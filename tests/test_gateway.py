"""Tests for the remote gateway against a local aiohttp server.

The fake remote mimics the script endpoint: one URL, an ``action``
query/body field, JSON answers for mutations and ``callback(...)``
answers for reads.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import Any

import pytest
from aiohttp import test_utils, web

from order_store import LocalOrderStore, MemoryKeyValueStore, OrderStore, StoreConfig
from order_store.exceptions import ValidationError
from order_store.models import Order
from order_store.remote import CallbackRegistry, FailureKind, RemoteGateway
from order_store.remote.gateway import unwrap_callback


@dataclass
class FakeRemote:
    """Behaviour switches and recorded traffic for the fake endpoint."""

    ping_status: int = 200
    ping_body: str = '{"success": true, "message": "pong"}'
    post_status: int = 200
    post_body: dict[str, Any] = field(default_factory=lambda: {"success": True})
    post_hang: bool = False
    orders: list[dict[str, Any]] = field(default_factory=list)
    # callback | bare | wrong_token | garbage | hang | http_error | rejected | no_flag
    fetch_mode: str = "callback"
    posts: list[dict[str, Any]] = field(default_factory=list)
    callbacks: list[str] = field(default_factory=list)
    release: asyncio.Event = field(default_factory=asyncio.Event)

    async def handle(self, request: web.Request) -> web.Response:
        if request.method == "POST":
            return await self._handle_post(request)

        action = request.query.get("action")
        if action == "ping":
            return web.Response(status=self.ping_status, text=self.ping_body)
        if action == "getOrders":
            return await self._handle_fetch(request)
        return web.json_response({"success": False, "error": "Unknown action"})

    async def _handle_post(self, request: web.Request) -> web.Response:
        body = await request.json()
        self.posts.append(body)
        if self.post_hang:
            await self._wait_released()
        return web.json_response(self.post_body, status=self.post_status)

    async def _handle_fetch(self, request: web.Request) -> web.Response:
        token = request.query["callback"]
        self.callbacks.append(token)
        payload: dict[str, Any] = {"success": True, "data": self.orders}

        if self.fetch_mode == "hang":
            await self._wait_released()
        if self.fetch_mode == "http_error":
            return web.Response(status=500, text="Internal error")
        if self.fetch_mode == "garbage":
            return web.Response(text="<html>Sign in</html>")
        if self.fetch_mode == "bare":
            return web.Response(text=json.dumps(payload))
        if self.fetch_mode == "wrong_token":
            token = "someone_else"
        if self.fetch_mode == "rejected":
            payload = {"success": False, "error": "Sheet not found"}
        if self.fetch_mode == "no_flag":
            payload = {"data": self.orders}
        return web.Response(
            text=f"{token}({json.dumps(payload)});",
            content_type="application/javascript",
        )

    async def _wait_released(self) -> None:
        try:
            await asyncio.wait_for(self.release.wait(), timeout=5)
        except asyncio.TimeoutError:
            pass


@pytest.fixture
async def fake_remote() -> AsyncIterator[tuple[FakeRemote, str]]:
    remote = FakeRemote()
    app = web.Application()
    app.router.add_route("*", "/exec", remote.handle)
    server = test_utils.TestServer(app)
    await server.start_server()
    try:
        yield remote, str(server.make_url("/exec"))
    finally:
        remote.release.set()
        await server.close()


@pytest.fixture
async def gateway(fake_remote: tuple[FakeRemote, str]) -> AsyncIterator[RemoteGateway]:
    _, url = fake_remote
    gateway = RemoteGateway(url, request_timeout=2.0, fetch_timeout=1.0)
    yield gateway
    await gateway.close()


@pytest.fixture
async def unreachable_gateway() -> AsyncIterator[RemoteGateway]:
    # Port 9 (discard) is not served on test hosts, so connections are refused
    gateway = RemoteGateway("http://127.0.0.1:9/exec", request_timeout=2.0, fetch_timeout=1.0)
    yield gateway
    await gateway.close()


class TestUnwrapCallback:
    def test_callback_wrapped(self) -> None:
        assert unwrap_callback('cb_1({"success": true});') == ("cb_1", {"success": True})

    def test_bare_json(self) -> None:
        assert unwrap_callback('{"success": true}') == (None, {"success": True})

    def test_garbage(self) -> None:
        assert unwrap_callback("<html></html>") == (None, None)


class TestProbe:
    """Tests for RemoteGateway.probe."""

    async def test_reachable(self, gateway: RemoteGateway) -> None:
        result = await gateway.probe()

        assert result.reachable is True
        assert result.message == "pong"

    async def test_missing_success_flag_counts_as_reachable(
        self, fake_remote: tuple[FakeRemote, str], gateway: RemoteGateway
    ) -> None:
        remote, _ = fake_remote
        remote.ping_body = '{"status": "alive"}'

        result = await gateway.probe()

        assert result.reachable is True

    async def test_undecodable_2xx_counts_as_reachable(
        self, fake_remote: tuple[FakeRemote, str], gateway: RemoteGateway
    ) -> None:
        remote, _ = fake_remote
        remote.ping_body = "OK"

        assert (await gateway.probe()).reachable is True

    async def test_strict_mode_requires_flag(self, fake_remote: tuple[FakeRemote, str]) -> None:
        remote, url = fake_remote
        remote.ping_body = '{"status": "alive"}'
        gateway = RemoteGateway(url, assume_success_when_missing=False)
        try:
            result = await gateway.probe()
        finally:
            await gateway.close()

        assert result.reachable is False

    async def test_http_error(
        self, fake_remote: tuple[FakeRemote, str], gateway: RemoteGateway
    ) -> None:
        remote, _ = fake_remote
        remote.ping_status = 503

        result = await gateway.probe()

        assert result.reachable is False
        assert "503" in result.message

    async def test_unreachable(self, unreachable_gateway: RemoteGateway) -> None:
        result = await unreachable_gateway.probe()

        assert result.reachable is False
        assert result.message


class TestSubmit:
    """Tests for mutating calls."""

    async def test_add_order_posts_order_and_timestamp(
        self, fake_remote: tuple[FakeRemote, str], gateway: RemoteGateway
    ) -> None:
        remote, _ = fake_remote

        result = await gateway.add_order(Order(id=5, full_name="Ada"))

        assert result.ok is True
        [body] = remote.posts
        assert body["action"] == "addOrder"
        assert body["order"]["id"] == 5
        assert body["order"]["fullName"] == "Ada"
        assert body["timestamp"].endswith("Z")

    async def test_update_delete_clear_bodies(
        self, fake_remote: tuple[FakeRemote, str], gateway: RemoteGateway
    ) -> None:
        remote, _ = fake_remote

        await gateway.update_status(5, "Shipped")
        await gateway.delete_order(5)
        await gateway.clear_all()

        update, delete, clear = remote.posts
        assert update["action"] == "updateStatus"
        assert update["orderId"] == 5
        assert update["status"] == "Shipped"
        assert "timestamp" in update
        assert delete["action"] == "deleteOrder"
        assert delete["orderId"] == 5
        assert clear == {"action": "clearAll", "confirm": True}

    async def test_remote_reported_failure(
        self, fake_remote: tuple[FakeRemote, str], gateway: RemoteGateway
    ) -> None:
        remote, _ = fake_remote
        remote.post_body = {"success": False, "error": "Sheet is locked"}

        result = await gateway.delete_order(1)

        assert result.ok is False
        assert result.error == "Sheet is locked"
        assert result.failure is FailureKind.REJECTED

    async def test_missing_success_flag_is_failure(
        self, fake_remote: tuple[FakeRemote, str], gateway: RemoteGateway
    ) -> None:
        remote, _ = fake_remote
        remote.post_body = {"message": "done?"}

        result = await gateway.add_order(Order(id=1))

        assert result.ok is False
        assert result.error == "Unknown error"

    async def test_http_error_status(
        self, fake_remote: tuple[FakeRemote, str], gateway: RemoteGateway
    ) -> None:
        remote, _ = fake_remote
        remote.post_status = 500

        result = await gateway.add_order(Order(id=1))

        assert result.ok is False
        assert result.error == "HTTP 500"
        assert result.failure is FailureKind.REJECTED

    async def test_timeout_is_transport_failure(
        self, fake_remote: tuple[FakeRemote, str]
    ) -> None:
        remote, url = fake_remote
        remote.post_hang = True
        gateway = RemoteGateway(url, request_timeout=0.2)
        try:
            result = await gateway.add_order(Order(id=1))
        finally:
            await gateway.close()

        assert result.ok is False
        assert result.failure is FailureKind.TRANSPORT

    async def test_unreachable_is_transport_failure(
        self, unreachable_gateway: RemoteGateway
    ) -> None:
        result = await unreachable_gateway.update_status(1, "Paid")

        assert result.ok is False
        assert result.failure is FailureKind.TRANSPORT

    async def test_rejects_non_mutating_action(self, gateway: RemoteGateway) -> None:
        with pytest.raises(ValidationError):
            await gateway.submit("getOrders", {})


class TestFetch:
    """Tests for the callback-based read-all channel."""

    async def test_fetch_via_callback(
        self, fake_remote: tuple[FakeRemote, str], gateway: RemoteGateway
    ) -> None:
        remote, _ = fake_remote
        remote.orders = [{"id": "2", "status": "Shipped"}, {"id": 1}, {"bad": "record"}]

        snapshot = await gateway.fetch_snapshot()

        assert snapshot.ok is True
        assert snapshot.orders == [Order(id=2, status="Shipped"), Order(id=1)]
        assert len(gateway.callbacks) == 0

    async def test_fresh_token_per_call(
        self, fake_remote: tuple[FakeRemote, str], gateway: RemoteGateway
    ) -> None:
        remote, _ = fake_remote

        await gateway.fetch_all()
        await gateway.fetch_all()

        assert len(remote.callbacks) == 2
        assert remote.callbacks[0] != remote.callbacks[1]

    async def test_concurrent_fetches(
        self, fake_remote: tuple[FakeRemote, str], gateway: RemoteGateway
    ) -> None:
        remote, _ = fake_remote
        remote.orders = [{"id": 1}]

        results = await asyncio.gather(*(gateway.fetch_snapshot() for _ in range(5)))

        assert all(result.ok and result.orders == [Order(id=1)] for result in results)
        assert len(set(remote.callbacks)) == 5
        assert len(gateway.callbacks) == 0

    async def test_bare_json_accepted(
        self, fake_remote: tuple[FakeRemote, str], gateway: RemoteGateway
    ) -> None:
        remote, _ = fake_remote
        remote.fetch_mode = "bare"
        remote.orders = [{"id": 3}]

        assert await gateway.fetch_all() == [Order(id=3)]

    async def test_missing_flag_with_data_accepted(
        self, fake_remote: tuple[FakeRemote, str], gateway: RemoteGateway
    ) -> None:
        remote, _ = fake_remote
        remote.fetch_mode = "no_flag"
        remote.orders = [{"id": 3}]

        assert (await gateway.fetch_snapshot()).ok is True

    async def test_rejected(
        self, fake_remote: tuple[FakeRemote, str], gateway: RemoteGateway
    ) -> None:
        remote, _ = fake_remote
        remote.fetch_mode = "rejected"

        snapshot = await gateway.fetch_snapshot()

        assert snapshot.ok is False
        assert snapshot.error == "Sheet not found"
        assert snapshot.failure is FailureKind.REJECTED
        assert await gateway.fetch_all() == []

    @pytest.mark.parametrize("mode", ["http_error", "garbage"])
    async def test_bad_responses_fail_soft(
        self, fake_remote: tuple[FakeRemote, str], gateway: RemoteGateway, mode: str
    ) -> None:
        remote, _ = fake_remote
        remote.fetch_mode = mode

        snapshot = await gateway.fetch_snapshot()

        assert snapshot.ok is False
        assert snapshot.orders == []
        assert len(gateway.callbacks) == 0

    async def test_hanging_remote_resolves_at_ceiling(
        self, fake_remote: tuple[FakeRemote, str]
    ) -> None:
        remote, url = fake_remote
        remote.fetch_mode = "hang"
        registry = CallbackRegistry()
        gateway = RemoteGateway(url, request_timeout=5.0, fetch_timeout=0.2, callbacks=registry)
        try:
            loop = asyncio.get_running_loop()
            started = loop.time()
            snapshot = await gateway.fetch_snapshot()
            elapsed = loop.time() - started
        finally:
            await gateway.close()

        assert snapshot.ok is False
        assert snapshot.failure is FailureKind.TRANSPORT
        assert elapsed < 2.0
        assert len(registry) == 0

    async def test_answer_for_other_token_times_out(
        self, fake_remote: tuple[FakeRemote, str]
    ) -> None:
        remote, url = fake_remote
        remote.fetch_mode = "wrong_token"
        gateway = RemoteGateway(url, fetch_timeout=0.2)
        try:
            snapshot = await gateway.fetch_snapshot()
        finally:
            await gateway.close()

        assert snapshot.ok is False
        assert len(gateway.callbacks) == 0

    async def test_unreachable(self, unreachable_gateway: RemoteGateway) -> None:
        snapshot = await unreachable_gateway.fetch_snapshot()

        assert snapshot.ok is False
        assert snapshot.failure is FailureKind.TRANSPORT
        assert len(unreachable_gateway.callbacks) == 0


class TestOrderStoreAgainstFakeRemote:
    """OrderStore wired to a real gateway and the fake endpoint."""

    @pytest.fixture
    async def wired(
        self, fake_remote: tuple[FakeRemote, str]
    ) -> AsyncIterator[tuple[FakeRemote, OrderStore, LocalOrderStore]]:
        remote, url = fake_remote
        config = StoreConfig(
            api_url=url,
            allowed_url_prefix="http://127.0.0.1",
            request_timeout=0.5,
            fetch_timeout=1.0,
            sync_delay=0,
        )
        local = LocalOrderStore(MemoryKeyValueStore())
        store = OrderStore(config, local, RemoteGateway.from_config(config))
        async with store:
            yield remote, store, local

    async def test_save_is_mirrored(
        self, wired: tuple[FakeRemote, OrderStore, LocalOrderStore]
    ) -> None:
        remote, store, local = wired

        outcome = await store.save_order({"id": 1, "fullName": "Ada"})

        assert outcome.cloud_saved is True
        assert remote.posts[-1]["action"] == "addOrder"
        assert remote.posts[-1]["order"]["fullName"] == "Ada"
        assert local.load() == [Order(id=1, full_name="Ada")]

    async def test_hanging_remote_keeps_local_write(
        self, wired: tuple[FakeRemote, OrderStore, LocalOrderStore]
    ) -> None:
        remote, store, local = wired
        remote.post_hang = True

        outcome = await store.save_order({"id": 1})

        assert outcome.success is True
        assert outcome.cloud_error is not None
        assert store.remote_usable is False
        assert local.load() == [Order(id=1)]

    async def test_read_all_merges_remote_over_local(
        self, wired: tuple[FakeRemote, OrderStore, LocalOrderStore]
    ) -> None:
        remote, store, local = wired
        local.save_all([Order(id=2)])
        remote.orders = [{"id": 2, "status": "Shipped"}]

        orders = await store.load_all_orders()

        assert orders == [Order(id=2, status="Shipped")]
        assert local.load() == orders

    async def test_sync_uploads_local_only_orders(
        self, wired: tuple[FakeRemote, OrderStore, LocalOrderStore]
    ) -> None:
        remote, store, local = wired
        local.save_all([Order(id=1), Order(id=2)])
        remote.orders = [{"id": 2, "status": "Shipped"}]

        report = await store.sync_orders()

        assert report.success is True
        assert report.uploaded == 1
        assert [post["order"]["id"] for post in remote.posts] == [1]
        assert {order.id: order.status for order in local.load()} == {2: "Shipped", 1: "New"}
