"""
Order export to JSON and CSV files.

CSV output is UTF-8 with a byte-order mark so spreadsheet tools
pick the right encoding. Every text column is quoted with embedded
quotes doubled; id and total are written bare.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import date
from pathlib import Path

import aiofiles
import aiofiles.os

from .exceptions import StorageIOError, ValidationError
from .models import Order

EXPORT_PREFIX = "compyou_orders"
CSV_HEADER = ("ID", "Full Name", "Phone", "Email", "Address", "Type", "Total", "Date", "Status")

_MEDIA_TYPES = {
    "json": "application/json",
    "csv": "text/csv;charset=utf-8",
}


@dataclass
class ExportFile:
    """A rendered export, ready to be written."""

    filename: str
    content: str
    media_type: str


def export_filename(fmt: str, today: date | None = None) -> str:
    """File name embedding the export date, e.g. compyou_orders_2024-05-01.csv."""
    today = today or date.today()
    return f"{EXPORT_PREFIX}_{today.isoformat()}.{fmt}"


def render_json(orders: list[Order]) -> str:
    return json.dumps([order.to_dict() for order in orders], indent=2, ensure_ascii=False)


def _quote(text: str) -> str:
    return '"' + text.replace('"', '""') + '"'


def render_csv(orders: list[Order]) -> str:
    rows = [",".join(CSV_HEADER)]
    for order in orders:
        rows.append(
            ",".join(
                [
                    str(order.id),
                    _quote(order.full_name),
                    _quote(order.phone),
                    _quote(order.email),
                    _quote(order.address),
                    _quote(order.order_type),
                    str(order.total),
                    _quote(order.date),
                    _quote(order.status),
                ]
            )
        )
    return "\ufeff" + "\n".join(rows)


def build_export(orders: list[Order], fmt: str = "json", today: date | None = None) -> ExportFile:
    """Render orders in the requested format.

    Raises:
        ValidationError: If the format is not 'json' or 'csv'
    """
    if fmt == "json":
        content = render_json(orders)
    elif fmt == "csv":
        content = render_csv(orders)
    else:
        raise ValidationError("format", "must be 'json' or 'csv'", fmt)

    return ExportFile(
        filename=export_filename(fmt, today),
        content=content,
        media_type=_MEDIA_TYPES[fmt],
    )


async def write_export(
    orders: list[Order],
    directory: Path,
    fmt: str = "json",
    today: date | None = None,
) -> Path:
    """Render orders and write them into directory.

    Returns:
        Path of the written file
    """
    export = build_export(orders, fmt, today)
    path = Path(directory) / export.filename
    try:
        await aiofiles.os.makedirs(path.parent, exist_ok=True)
        async with aiofiles.open(path, "w", encoding="utf-8", newline="") as f:
            await f.write(export.content)
    except OSError as e:
        raise StorageIOError("export", str(path), e) from e
    return path
