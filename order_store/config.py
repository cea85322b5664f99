"""
Store configuration.

Configuration can be provided directly, read from environment
variables, or loaded from the ``orders`` section of a YAML file:

```yaml
orders:
  api_url: "https://script.google.com/macros/s/<deployment>/exec"
  data_path: "~/.order_store"
  fetch_timeout: 10
  sync_delay: 0.1
```

Environment Variables:
    ORDER_STORE_API_URL: Remote endpoint URL
    ORDER_STORE_ALLOWED_URL_PREFIX: Prefix an endpoint must start with to be used
    ORDER_STORE_DATA_PATH: Directory for the local order file
    ORDER_STORE_STORAGE_KEY: Key of the local slot holding the orders
    ORDER_STORE_REQUEST_TIMEOUT: Seconds before a mutating call times out
    ORDER_STORE_FETCH_TIMEOUT: Ceiling in seconds for the read-all channel
    ORDER_STORE_SYNC_DELAY: Pause in seconds between uploads during sync
    ORDER_STORE_PROBE_ON_INIT: Wait for a connectivity probe during init
    ORDER_STORE_ASSUME_SUCCESS: Treat responses without a success field as successful
"""

from __future__ import annotations

import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any

import yaml

from .exceptions import ValidationError

DEFAULT_URL_PREFIX = "https://script.google.com"
DEFAULT_STORAGE_KEY = "compyou_orders"


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None or value == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_float(name: str, default: float) -> float:
    value = os.environ.get(name)
    if value is None or value == "":
        return default
    try:
        return float(value)
    except ValueError as e:
        raise ValidationError(name, "must be a number", value) from e


@dataclass
class StoreConfig:
    """Configuration for OrderStore.

    Attributes:
        api_url: Remote endpoint URL (None keeps the store local-only)
        allowed_url_prefix: An api_url must start with this to be considered usable
        data_path: Directory holding the local order file
        storage_key: Key of the local slot holding the serialized orders
        request_timeout: Seconds before a probe or mutating call times out
        fetch_timeout: Ceiling in seconds for the read-all callback channel
        sync_delay: Pause in seconds between uploads during reconciliation
        probe_on_init: Whether init() waits for a connectivity probe
        assume_success_when_missing: Treat probe/fetch responses lacking a
            ``success`` field as successful
    """

    api_url: str | None = None
    allowed_url_prefix: str = DEFAULT_URL_PREFIX
    data_path: str | None = None
    storage_key: str = DEFAULT_STORAGE_KEY
    request_timeout: float = 15.0
    fetch_timeout: float = 10.0
    sync_delay: float = 0.1
    probe_on_init: bool = True
    assume_success_when_missing: bool = True

    def __post_init__(self) -> None:
        for name in ("request_timeout", "fetch_timeout"):
            if getattr(self, name) <= 0:
                raise ValidationError(name, "must be positive", getattr(self, name))
        if self.sync_delay < 0:
            raise ValidationError("sync_delay", "must not be negative", self.sync_delay)
        if not self.storage_key:
            raise ValidationError("storage_key", "must not be empty")

    @property
    def remote_configured(self) -> bool:
        """Static validity of the remote settings (no network involved)."""
        return bool(self.api_url) and self.api_url.startswith(self.allowed_url_prefix)

    @property
    def resolved_data_path(self) -> Path:
        """Directory for local data, defaulting to ~/.order_store."""
        if self.data_path:
            return Path(self.data_path).expanduser()
        return Path.home() / ".order_store"

    @classmethod
    def from_environment(cls) -> StoreConfig:
        """Create configuration from environment variables."""
        return cls(
            api_url=os.environ.get("ORDER_STORE_API_URL") or None,
            allowed_url_prefix=os.environ.get(
                "ORDER_STORE_ALLOWED_URL_PREFIX", DEFAULT_URL_PREFIX
            ),
            data_path=os.environ.get("ORDER_STORE_DATA_PATH") or None,
            storage_key=os.environ.get("ORDER_STORE_STORAGE_KEY", DEFAULT_STORAGE_KEY),
            request_timeout=_env_float("ORDER_STORE_REQUEST_TIMEOUT", 15.0),
            fetch_timeout=_env_float("ORDER_STORE_FETCH_TIMEOUT", 10.0),
            sync_delay=_env_float("ORDER_STORE_SYNC_DELAY", 0.1),
            probe_on_init=_env_bool("ORDER_STORE_PROBE_ON_INIT", True),
            assume_success_when_missing=_env_bool("ORDER_STORE_ASSUME_SUCCESS", True),
        )

    @classmethod
    def from_file(cls, path: Path | str) -> StoreConfig:
        """Load configuration from the ``orders`` section of a YAML file.

        Unknown keys are ignored. A missing section yields defaults.
        """
        path = Path(path)
        with open(path, encoding="utf-8") as f:
            content = yaml.safe_load(f) or {}

        if not isinstance(content, dict):
            raise ValidationError("config", "top level must be a mapping", str(path))

        section: dict[str, Any] = content.get("orders") or {}
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in section.items() if k in known})
