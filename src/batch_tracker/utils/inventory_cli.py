"""
Inventory CLI Utility

Command-line interface over the batch inventory services.
No UI required - designed for administrative and scripted use.

Usage Examples:
    # Create a product with 12 units of starting stock (expires in a year)
    batch-tracker add-product "Aceite de Oliva" --price 8.50 --unit bottle --stock 12

    # Restock with a new batch
    batch-tracker restock 1 24 --expiry 2026-03-31 --actor maria

    # Consume 8 units, soonest expiry first
    batch-tracker consume 1 8 --note "order 1042"

    # Preview a consumption without changing anything
    batch-tracker consume 1 8 --dry-run

    # Set the aggregate stock to a counted value
    batch-tracker correct 1 30 --note "stocktake"

    # Rebuild aggregates from the batch ledger
    batch-tracker reconcile 1
    batch-tracker reconcile --all

    # Expiry radar
    batch-tracker expiring --days 15
    batch-tracker expired

    # Audit trail
    batch-tracker history 1
    batch-tracker recent --days 7
    batch-tracker purge --days 365

    # Stock reports
    batch-tracker summary 1
    batch-tracker low-stock --threshold 5

The module can also be run directly:
    python -m batch_tracker.utils.inventory_cli expiring --days 30
"""

import argparse
import sys
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import List, Optional

from batch_tracker.services import (
    adjustment_service,
    batch_service,
    expiry_service,
    fifo_service,
    product_service,
    stock_alert_service,
)
from batch_tracker.services.database import initialize_app_database
from batch_tracker.services.exceptions import ServiceError
from batch_tracker.utils.constants import (
    ADJUSTMENT_CATEGORY_LABELS,
    DATE_FORMAT,
    DATETIME_FORMAT,
    DEFAULT_EXPIRY_THRESHOLD_DAYS,
    DEFAULT_RECENT_ADJUSTMENT_DAYS,
)


def _parse_date(value: str) -> date:
    """argparse type for YYYY-MM-DD dates."""
    try:
        return datetime.strptime(value, DATE_FORMAT).date()
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid date '{value}', expected YYYY-MM-DD")


def _parse_price(value: str) -> Decimal:
    """argparse type for prices."""
    try:
        return Decimal(value)
    except InvalidOperation:
        raise argparse.ArgumentTypeError(f"Invalid price '{value}'")


def _format_timestamp(value: Optional[str]) -> str:
    if not value:
        return "-"
    return datetime.fromisoformat(value).strftime(DATETIME_FORMAT)


def _print_adjustments(adjustments: List[dict]) -> None:
    if not adjustments:
        print("No adjustments found.")
        return
    for adj in adjustments:
        label = ADJUSTMENT_CATEGORY_LABELS.get(adj["category"], adj["category"])
        print(
            f"{_format_timestamp(adj['timestamp'])}  {adj['product_title'] or adj['product_id']:<24} "
            f"{label:<12} {adj['quantity_before']:>6} -> {adj['quantity_after']:<6} "
            f"({adj['difference']:+d})  by {adj['actor']}"
        )
        if adj["note"]:
            print(f"    {adj['note']}")


def _print_radar(rows: List[dict], empty_message: str) -> None:
    if not rows:
        print(empty_message)
        return
    for row in rows:
        band = (row["band"] or "-").upper()
        print(
            f"{row['expiry_date'].isoformat()}  ({row['days_until_expiry']:>4}d) {band:<9} "
            f"{row['batch_code']:<24} qty {row['quantity']:>5}  {row['product_title']}"
        )


# =============================================================================
# Commands
# =============================================================================


def add_product(args) -> int:
    """Create a product (with optional starting stock)."""
    product = product_service.create_product(
        args.title,
        args.price,
        args.unit,
        stock=args.stock,
        category=args.category,
        expiry_date=args.expiry,
        description=args.description,
        actor=args.actor,
    )
    print(f"Created product {product.id}: {product.title} (stock {product.stock})")
    if product.stock != product.initial_stock:
        print("WARNING: starting stock was not restocked; check the log and run 'restock'")
    return 0


def restock(args) -> int:
    """Create a new batch for a product."""
    batch = batch_service.create_batch(
        args.product_id, args.quantity, args.expiry, actor=args.actor, note=args.note
    )
    print(
        f"Created batch {batch.batch_code}: {batch.quantity} units, "
        f"expires {batch.expiry_date.isoformat()}"
    )
    return 0


def consume(args) -> int:
    """Consume units FIFO by expiry."""
    breakdown = fifo_service.consume_fifo(
        args.product_id,
        args.quantity,
        actor=args.actor,
        note=args.note,
        dry_run=args.dry_run,
    )
    heading = "Would consume" if args.dry_run else "Consumed"
    print(f"{heading} {args.quantity} units:")
    for entry in breakdown:
        print(
            f"  {entry['batch_code']:<24} {entry['units_consumed']:>5} units "
            f"(remaining {entry['remaining_in_batch']})"
        )
    return 0


def correct(args) -> int:
    """Set the aggregate stock to an absolute value."""
    adjustment = adjustment_service.set_stock(
        args.product_id, args.quantity, actor=args.actor, note=args.note
    )
    if adjustment is None:
        print("Stock unchanged.")
    else:
        print(
            f"Stock corrected: {adjustment.quantity_before} -> {adjustment.quantity_after} "
            f"({adjustment.difference:+d})"
        )
    return 0


def reconcile(args) -> int:
    """Rebuild aggregate stock from the batch ledger."""
    if args.all:
        results = batch_service.reconcile_all_products(actor=args.actor)
        if not results:
            print("All products consistent.")
        for result in results:
            print(
                f"Product {result['product_id']}: {result['previous_stock']} -> "
                f"{result['new_stock']}"
            )
        return 0

    if args.product_id is None:
        print("ERROR: give a product id or --all")
        return 1

    result = batch_service.reconcile_stock(args.product_id, actor=args.actor)
    if result["changed"]:
        print(f"Stock reconciled: {result['previous_stock']} -> {result['new_stock']}")
    else:
        print(f"Stock already consistent ({result['new_stock']}).")
    return 0


def expiring(args) -> int:
    """List batches expiring within the horizon."""
    rows = expiry_service.get_expiring_batches(days_threshold=args.days)
    _print_radar(rows, f"No batches expire within {args.days} days.")
    return 0


def expired(args) -> int:
    """List live batches already past expiry."""
    rows = expiry_service.get_expired_batches()
    _print_radar(rows, "No expired batches.")
    return 0


def history(args) -> int:
    """Show a product's adjustment history."""
    _print_adjustments(adjustment_service.get_adjustment_history(args.product_id, limit=args.limit))
    return 0


def recent(args) -> int:
    """Show recent adjustments across products."""
    _print_adjustments(adjustment_service.get_recent_adjustments(days=args.days))
    return 0


def summary(args) -> int:
    """Show aggregate stock vs. batch ledger for a product."""
    report = batch_service.get_batch_stock_summary(args.product_id)
    print(f"{report['product_title']} (product {report['product_id']})")
    print(f"  Total stock:        {report['total_stock']}")
    print(f"  In batches:         {report['stock_in_batches']} ({report['batch_count']} batches)")
    print(f"  Outside batches:    {report['stock_outside_batches']}")
    if not report["is_consistent"]:
        print("  WARNING: aggregate is below the batch total; run 'reconcile'")
    for batch in report["batches"]:
        print(
            f"    {batch['batch_code']:<24} qty {batch['quantity']:>5}  "
            f"expires {batch['expiry_date'].isoformat()}"
        )
    return 0


def purge(args) -> int:
    """Delete adjustments older than the retention window."""
    deleted = adjustment_service.purge_old_adjustments(retention_days=args.days)
    print(f"Purged {deleted} adjustment(s).")
    return 0


def low_stock(args) -> int:
    """List products at or below the low-stock threshold."""
    rows = stock_alert_service.check_low_stock(threshold=args.threshold)
    if not rows:
        print("No products with low stock.")
    for row in rows:
        print(f"{row['product_id']:>5}  {row['title']:<32} stock {row['stock']:>5}")
    return 0


COMMANDS = {
    "add-product": add_product,
    "restock": restock,
    "consume": consume,
    "correct": correct,
    "reconcile": reconcile,
    "expiring": expiring,
    "expired": expired,
    "history": history,
    "recent": recent,
    "summary": summary,
    "purge": purge,
    "low-stock": low_stock,
}


# =============================================================================
# Parser
# =============================================================================


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser for all commands."""
    parser = argparse.ArgumentParser(
        prog="batch-tracker",
        description="Batch inventory and FIFO consumption for perishable goods",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Enable debug logging"
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to execute")

    p = subparsers.add_parser("add-product", help="Create a product")
    p.add_argument("title", help="Product title")
    p.add_argument("--price", type=_parse_price, required=True, help="Unit price")
    p.add_argument("--unit", required=True, help="Unit of measure")
    p.add_argument("--stock", type=int, default=0, help="Starting stock (default: 0)")
    p.add_argument("--category", help="Product category")
    p.add_argument("--expiry", type=_parse_date, help="Expiry of starting stock (YYYY-MM-DD)")
    p.add_argument("--description", help="Long description")
    p.add_argument("--actor", help="Who is making the change")

    p = subparsers.add_parser("restock", help="Create a new batch")
    p.add_argument("product_id", type=int)
    p.add_argument("quantity", type=int)
    p.add_argument("--expiry", type=_parse_date, required=True, help="Expiry date (YYYY-MM-DD)")
    p.add_argument("--actor", help="Who is making the change")
    p.add_argument("--note", help="Note recorded on the adjustment")

    p = subparsers.add_parser("consume", help="Consume stock FIFO by expiry")
    p.add_argument("product_id", type=int)
    p.add_argument("quantity", type=int)
    p.add_argument("--actor", help="Who is making the change")
    p.add_argument("--note", help="Note recorded on the adjustment")
    p.add_argument("--dry-run", action="store_true", help="Show the breakdown only")

    p = subparsers.add_parser("correct", help="Set aggregate stock to an absolute value")
    p.add_argument("product_id", type=int)
    p.add_argument("quantity", type=int)
    p.add_argument("--actor", help="Who is making the change")
    p.add_argument("--note", help="Reason for the correction")

    p = subparsers.add_parser("reconcile", help="Rebuild aggregate stock from batches")
    p.add_argument("product_id", type=int, nargs="?")
    p.add_argument("--all", action="store_true", help="Reconcile every product")
    p.add_argument("--actor", help="Who is making the change")

    p = subparsers.add_parser("expiring", help="Batches expiring soon")
    p.add_argument(
        "--days",
        type=int,
        default=DEFAULT_EXPIRY_THRESHOLD_DAYS,
        help=f"Horizon in days (default: {DEFAULT_EXPIRY_THRESHOLD_DAYS})",
    )

    subparsers.add_parser("expired", help="Live batches past expiry")

    p = subparsers.add_parser("history", help="Adjustment history of a product")
    p.add_argument("product_id", type=int)
    p.add_argument("--limit", type=int, help="Maximum entries")

    p = subparsers.add_parser("recent", help="Recent adjustments")
    p.add_argument(
        "--days",
        type=int,
        default=DEFAULT_RECENT_ADJUSTMENT_DAYS,
        help=f"Window in days (default: {DEFAULT_RECENT_ADJUSTMENT_DAYS})",
    )

    p = subparsers.add_parser("summary", help="Stock vs. batch ledger for a product")
    p.add_argument("product_id", type=int)

    p = subparsers.add_parser("purge", help="Delete adjustments past retention")
    p.add_argument("--days", type=int, help="Retention in days (default: configured)")

    p = subparsers.add_parser("low-stock", help="Products at or below a stock level")
    p.add_argument("--threshold", type=int, help="Stock level (default: configured)")

    return parser


def execute(args: argparse.Namespace) -> int:
    """
    Initialize the database and run the parsed command.

    Returns:
        Process exit code (0 success, 1 failure)
    """
    handler = COMMANDS.get(args.command)
    if handler is None:
        build_parser().print_help()
        return 1

    initialize_app_database()

    try:
        return handler(args)
    except ServiceError as e:
        print(f"ERROR: {e}")
        return 1


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point."""
    args = build_parser().parse_args(argv)
    return execute(args)


if __name__ == "__main__":
    sys.exit(main())
