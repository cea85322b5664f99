"""
Shared test configuration and fixtures.

Provides an in-memory local store and a mocked remote gateway that
succeeds by default. Individual tests override the mock's return
values to simulate timeouts and rejections.
"""

from unittest.mock import AsyncMock

import pytest

from order_store import (
    FetchResult,
    LocalOrderStore,
    MemoryKeyValueStore,
    OrderStore,
    ProbeResult,
    RemoteGateway,
    StoreConfig,
    SubmitResult,
)

TEST_API_URL = "https://script.google.com/macros/s/test-deployment/exec"


@pytest.fixture
def medium() -> MemoryKeyValueStore:
    return MemoryKeyValueStore()


@pytest.fixture
def local(medium: MemoryKeyValueStore) -> LocalOrderStore:
    return LocalOrderStore(medium)


@pytest.fixture
def remote_config() -> StoreConfig:
    """Config whose remote settings pass the static validity check."""
    return StoreConfig(api_url=TEST_API_URL, sync_delay=0)


@pytest.fixture
def mock_remote() -> AsyncMock:
    """Remote gateway double where every call succeeds."""
    mock = AsyncMock(spec=RemoteGateway)
    mock.probe.return_value = ProbeResult(reachable=True, message="pong")
    mock.add_order.return_value = SubmitResult(ok=True)
    mock.update_status.return_value = SubmitResult(ok=True)
    mock.delete_order.return_value = SubmitResult(ok=True)
    mock.clear_all.return_value = SubmitResult(ok=True, message="All orders cleared")
    mock.fetch_snapshot.return_value = FetchResult(ok=True, orders=[])
    return mock


@pytest.fixture
def store(remote_config: StoreConfig, local: LocalOrderStore, mock_remote: AsyncMock) -> OrderStore:
    """Store with a usable (mocked) remote."""
    return OrderStore(remote_config, local, mock_remote)


@pytest.fixture
def offline_store(local: LocalOrderStore) -> OrderStore:
    """Store without a remote."""
    return OrderStore(StoreConfig(), local)
