"""Command-line front end for the order store.

Builds one OrderStore from configuration, runs a single command,
and shuts the store down again.

Usage:
    python scripts/orders_cli.py list
    python scripts/orders_cli.py add --id 1700000000 --name "Ada Lovelace" --total 1200
    python scripts/orders_cli.py status 1700000000 Shipped
    python scripts/orders_cli.py sync
    python scripts/orders_cli.py export --format csv --output ./exports

Configuration comes from --config (YAML, ``orders:`` section) or
from ORDER_STORE_* environment variables.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
import time
from datetime import date
from pathlib import Path
from typing import Any

from order_store import OrderStore, StoreConfig
from order_store.logging_utils import configure_structured_logging, get_store_logger

logger = get_store_logger("cli")


def _print(data: Any) -> None:
    print(json.dumps(data, indent=2, ensure_ascii=False))


async def run(store: OrderStore, args: argparse.Namespace) -> int:
    """Execute one command against an initialized store."""
    if args.command == "list":
        orders = await store.load_all_orders()
        _print([order.to_dict() for order in orders])
        return 0

    if args.command == "add":
        record = {
            "id": args.id if args.id is not None else int(time.time() * 1000),
            "fullName": args.name,
            "phone": args.phone,
            "email": args.email,
            "address": args.address,
            "orderType": args.type,
            "total": args.total,
            "date": args.date or date.today().isoformat(),
            "status": args.status,
        }
        outcome = await store.save_order(record)
        _print(outcome.to_dict())
        return 0 if outcome.success else 1

    if args.command == "status":
        outcome = await store.update_order_status(args.order_id, args.new_status)
        _print(outcome.to_dict())
        return 0 if outcome.success else 1

    if args.command == "delete":
        outcome = await store.delete_order(args.order_id)
        _print(outcome.to_dict())
        return 0 if outcome.success else 1

    if args.command == "clear":
        outcome = await store.clear_all_orders(confirm=args.yes)
        _print(outcome.to_dict())
        return 0 if outcome.success else 1

    if args.command == "sync":
        report = await store.sync_orders()
        _print(report.to_dict())
        return 0 if report.success else 1

    if args.command == "stats":
        _print(store.get_stats().to_dict())
        return 0

    if args.command == "export":
        # Populate the merged view first so the export reflects the remote too
        await store.load_all_orders()
        path = await store.export_to_file(args.format, args.output)
        if path is None:
            print("No orders to export", file=sys.stderr)
            return 1
        print(path)
        return 0

    if args.command == "ping":
        result = await store.test_connection()
        _print({"reachable": result.reachable, "message": result.message})
        return 0 if result.reachable else 1

    raise ValueError(f"Unknown command: {args.command}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Manage orders in the local store and its remote mirror",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--config", type=Path, help="YAML settings file with an 'orders' section")
    parser.add_argument("--verbose", "-v", action="store_true", help="Log at DEBUG level")

    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("list", help="Print the merged order list")

    add = commands.add_parser("add", help="Create or replace an order")
    add.add_argument("--id", type=int, help="Order id (default: current time in ms)")
    add.add_argument("--name", default="", help="Customer full name")
    add.add_argument("--phone", default="")
    add.add_argument("--email", default="")
    add.add_argument("--address", default="")
    add.add_argument("--type", default="custom", help="Order type tag")
    add.add_argument("--total", type=float, default=0)
    add.add_argument("--date", help="Order date (default: today)")
    add.add_argument("--status", default="New")

    status = commands.add_parser("status", help="Change an order's status")
    status.add_argument("order_id", type=int)
    status.add_argument("new_status")

    delete = commands.add_parser("delete", help="Delete an order")
    delete.add_argument("order_id", type=int)

    clear = commands.add_parser("clear", help="Delete every order")
    clear.add_argument("--yes", action="store_true", help="Confirm clearing all orders")

    commands.add_parser("sync", help="Upload local-only orders to the remote")
    commands.add_parser("stats", help="Print order counts by status")
    commands.add_parser("ping", help="Check the remote datastore")

    export = commands.add_parser("export", help="Export orders to a dated file")
    export.add_argument("--format", choices=["json", "csv"], default="json")
    export.add_argument("--output", type=Path, default=Path.cwd(), help="Target directory")

    return parser


async def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    configure_structured_logging(
        logging.DEBUG if args.verbose else logging.WARNING,
        static_fields={"app": "orders-cli"},
    )

    config = StoreConfig.from_file(args.config) if args.config else StoreConfig.from_environment()
    async with OrderStore.create(config) as store:
        logger.debug(f"Running command '{args.command}'")
        return await run(store, args)


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
