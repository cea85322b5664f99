"""
Order record and its normalization.

Every record entering the store (from the caller, the local file,
or the remote datastore) passes through Order.from_dict, which is
the only place field defaults are applied. The rest of the package
can rely on a fully populated record.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Any

from .exceptions import ValidationError

logger = logging.getLogger(__name__)

DEFAULT_ORDER_TYPE = "custom"
DEFAULT_STATUS = "New"

# Wire names of the known fields, in export order
_KNOWN_KEYS = (
    "id",
    "fullName",
    "phone",
    "email",
    "address",
    "orderType",
    "total",
    "date",
    "status",
)


def coerce_order_id(value: Any) -> int:
    """Coerce a record id to int.

    Spreadsheet-backed remotes return ids as "12" or 12.0.
    """
    if isinstance(value, bool):
        raise ValidationError("id", "must be an integer", value)
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        text = value.strip()
        try:
            return int(text)
        except ValueError:
            try:
                number = float(text)
            except ValueError:
                number = None
            if number is not None and number.is_integer():
                return int(number)
    raise ValidationError("id", "must be an integer", value)


def _coerce_total(value: Any) -> int | float:
    if value is None or value == "":
        return 0
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if value.is_integer() else value
    try:
        number = float(str(value).strip())
    except ValueError:
        return 0
    return int(number) if number.is_integer() else number


def _text(value: Any) -> str:
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)


@dataclass
class Order:
    """A single customer order.

    Attributes:
        id: Caller-assigned identifier; larger means created later
        full_name: Customer name
        phone: Contact phone
        email: Contact email
        address: Delivery address
        order_type: Order category tag
        total: Order amount
        date: Opaque date string
        status: Free-form status tag
        extra: Unknown fields, carried through unchanged
    """

    id: int
    full_name: str = ""
    phone: str = ""
    email: str = ""
    address: str = ""
    order_type: str = DEFAULT_ORDER_TYPE
    total: int | float = 0
    date: str = ""
    status: str = DEFAULT_STATUS
    extra: dict[str, Any] = field(default_factory=dict)

    def with_status(self, status: str) -> Order:
        """Return a copy of this order carrying a new status."""
        return replace(self, status=status, extra=dict(self.extra))

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the wire/storage shape (camelCase keys)."""
        data: dict[str, Any] = dict(self.extra)
        data.update(
            {
                "id": self.id,
                "fullName": self.full_name,
                "phone": self.phone,
                "email": self.email,
                "address": self.address,
                "orderType": self.order_type,
                "total": self.total,
                "date": self.date,
                "status": self.status,
            }
        )
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Order:
        """Normalize a raw record into an Order.

        Raises:
            ValidationError: If the record is not a mapping or has no usable id
        """
        if not isinstance(data, dict):
            raise ValidationError("order", "must be a mapping", data)
        if "id" not in data:
            raise ValidationError("id", "is required")

        status = data.get("status")
        order_type = data.get("orderType")
        # Defaults apply only to absent fields
        return cls(
            id=coerce_order_id(data["id"]),
            full_name=_text(data.get("fullName")),
            phone=_text(data.get("phone")),
            email=_text(data.get("email")),
            address=_text(data.get("address")),
            order_type=DEFAULT_ORDER_TYPE if order_type is None else _text(order_type),
            total=_coerce_total(data.get("total")),
            date=_text(data.get("date")),
            status=DEFAULT_STATUS if status is None else _text(status),
            extra={k: v for k, v in data.items() if k not in _KNOWN_KEYS},
        )

    @classmethod
    def coerce(cls, value: Order | dict[str, Any]) -> Order:
        """Accept either an Order or a raw mapping."""
        if isinstance(value, cls):
            return value
        return cls.from_dict(value)


def split_records(records: list[Any]) -> tuple[list[Order], list[Any]]:
    """Separate records that normalize into Orders from those that do not.

    Returns:
        (orders, rejected) where rejected holds the raw records unchanged
    """
    orders: list[Order] = []
    rejected: list[Any] = []
    for record in records:
        try:
            orders.append(Order.from_dict(record))
        except ValidationError:
            rejected.append(record)
    return orders, rejected


def normalize_orders(records: list[Any], source: str) -> list[Order]:
    """Normalize raw records, leaving out the ones without a usable id."""
    orders, rejected = split_records(records)
    for record in rejected:
        logger.warning(f"Skipping unreadable {source} order record: {record!r:.200}")
    return orders
