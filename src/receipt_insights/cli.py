"""CLI entry point for receipt-insights."""

from __future__ import annotations

import logging
import mimetypes
from pathlib import Path
from typing import TYPE_CHECKING

import click

from receipt_insights import aggregate
from receipt_insights.config import (
    get_inference_config,
    get_learned_store_backend,
    get_log_level,
    get_store_path,
)
from receipt_insights.ingest import (
    apply_corrections,
    ingest_receipt,
    propose_quantity_corrections,
)
from receipt_insights.learning import LearnedQuantities, open_learned_store
from receipt_insights.models import ALL_STORES, ReceiptImage
from receipt_insights.normalize import normalize_product_key
from receipt_insights.store import LocalReceiptStore

if TYPE_CHECKING:
    from datetime import datetime

    from receipt_insights.models import Receipt


def _money(value: float | None) -> str:
    return "—" if value is None else f"{value:.3f}"


def _day(value: datetime | None) -> str:
    return value.strftime("%Y-%m-%d") if value else "date inconnue"


def _receipt_store(user: str) -> LocalReceiptStore:
    return LocalReceiptStore(get_store_path(), user)


def _learned(user: str) -> LearnedQuantities:
    backend = open_learned_store(
        get_learned_store_backend(), user_id=user, root=get_store_path()
    )
    return LearnedQuantities(backend)


def _describe(receipt: Receipt) -> str:
    return (
        f"{receipt.id}  {_day(receipt.purchase_at)}  "
        f"{receipt.store_name or 'Magasin inconnu'}  "
        f"{len(receipt.lines)} lines  "
        f"{_money(receipt.total)} {receipt.currency or ''}".rstrip()
    )


user_option = click.option(
    "--user",
    "user",
    envvar="RECEIPTS_USER",
    required=True,
    help="User whose receipts are read and written.",
)


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging.")
def cli(verbose: bool) -> None:
    """Receipt Insights — track grocery spending and product prices."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else get_log_level(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@cli.command()
@user_option
@click.argument(
    "files",
    nargs=-1,
    required=True,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
)
def ingest(user: str, files: tuple[Path, ...]) -> None:
    """Extract, enrich and save receipt images."""
    receipts = _receipt_store(user)
    learned = _learned(user)
    config = get_inference_config()

    for path in files:
        content_type = mimetypes.guess_type(path.name)[0] or "image/jpeg"
        image = ReceiptImage(
            filename=path.name, content_type=content_type, data=path.read_bytes()
        )
        receipt = ingest_receipt(
            image, receipts=receipts, learned=learned, config=config
        )
        click.echo(f"Saved {_describe(receipt)}")


@cli.command(name="list")
@user_option
def list_receipts(user: str) -> None:
    """List stored receipts, newest first."""
    receipts = _receipt_store(user).list_receipts()
    if not receipts:
        click.echo("No receipts.")
        return
    for receipt in receipts:
        click.echo(_describe(receipt))


@cli.command()
@user_option
@click.argument("receipt_id")
def delete(user: str, receipt_id: str) -> None:
    """Delete a stored receipt."""
    if not _receipt_store(user).delete(receipt_id):
        msg = f"Receipt {receipt_id} not found"
        raise click.ClickException(msg)
    click.echo(f"Deleted {receipt_id}")


@cli.command()
@user_option
@click.option("--store", default=ALL_STORES, show_default=True)
@click.option("--months", type=click.IntRange(min=1), default=None)
def stats(user: str, store: str, months: int | None) -> None:
    """Show spending totals by category, store and month."""
    receipts = aggregate.filter_receipts(
        _receipt_store(user).list_receipts(), store=store, months=months
    )
    kpis = aggregate.compute_kpis(receipts)
    click.echo(f"Total spend:  {_money(kpis.total_spend)}")
    click.echo(f"Avg basket:   {_money(kpis.avg_basket)}")
    click.echo(f"Receipts:     {kpis.count_receipts}")
    click.echo(f"Items:        {kpis.count_items}")

    click.echo("\nBy category:")
    by_category = aggregate.spend_by_category(receipts)
    for name, total in sorted(by_category.items(), key=lambda kv: kv[1], reverse=True):
        click.echo(f"  {name:<20} {_money(total)}")

    click.echo("\nBy store:")
    by_store = aggregate.spend_by_store(receipts)
    for name, total in sorted(by_store.items(), key=lambda kv: kv[1], reverse=True):
        click.echo(f"  {name:<20} {_money(total)}")

    click.echo("\nBy month:")
    for point in aggregate.monthly_trend(receipts):
        click.echo(f"  {point.month}  {_money(point.total)}")


@cli.command()
@user_option
@click.option("--query", default="", help="Substring of the product key.")
@click.option("--store", default=ALL_STORES, show_default=True)
@click.option("--top", type=click.IntRange(min=1), default=20, show_default=True)
def products(user: str, query: str, store: str, top: int) -> None:
    """Rank products by total spend with their last known price."""
    receipts = aggregate.filter_receipts(
        _receipt_store(user).list_receipts(), store=store
    )
    purchases = aggregate.flatten_purchases_from_receipts(receipts)
    needle = normalize_product_key(query)
    if needle:
        purchases = [p for p in purchases if needle in p.product_key]

    history = aggregate.group_history_by_product(purchases)
    last = aggregate.compute_last_purchase_by_product(purchases)
    totals = aggregate.product_totals(purchases)
    ranked = sorted(totals.items(), key=lambda kv: kv[1].total_spend, reverse=True)

    if not ranked:
        click.echo("No products.")
        return
    for key, total in ranked[:top]:
        info = last[key]
        click.echo(
            f"{aggregate.display_name_for_product(history[key]):<30} "
            f"spend {_money(total.total_spend)}  qty {total.total_qty:g}  "
            f"last {_money(info.last_unit_price)} on {_day(info.last_purchased_at)}"
            f"{' at ' + info.last_store_name if info.last_store_name else ''}"
        )


@cli.command()
@user_option
@click.argument("product")
def history(user: str, product: str) -> None:
    """Show every purchase of a product, newest first."""
    key = normalize_product_key(product)
    purchases = aggregate.flatten_purchases_from_receipts(
        _receipt_store(user).list_receipts()
    )
    items = aggregate.group_history_by_product(purchases).get(key, [])
    if not items:
        msg = f"No purchases of {product!r}"
        raise click.ClickException(msg)
    click.echo(aggregate.display_name_for_product(items))
    for item in items:
        click.echo(
            f"  {_day(item.purchase_at)}  {item.store_name or '—':<15} "
            f"qty {item.quantity:g}  unit {_money(aggregate.computed_unit_price(item))}  "
            f"total {_money(item.line_total)} {item.currency or ''}".rstrip()
        )


@cli.command()
@user_option
@click.option("--apply", "apply_changes", is_flag=True, help="Save the corrections.")
def recalc(user: str, apply_changes: bool) -> None:
    """Re-run quantity inference over stored receipts."""
    receipts = _receipt_store(user)
    changes = propose_quantity_corrections(
        receipts.list_receipts(),
        learned=_learned(user),
        config=get_inference_config(),
    )
    if not changes:
        click.echo("No corrections.")
        return
    for change in changes:
        click.echo(
            f"{change.receipt_id} ({change.store_name or 'Magasin inconnu'}): "
            f"{change.lines_updated} lines"
        )
        for detail in change.details:
            click.echo(
                f"  #{detail.index} {detail.label}: "
                f"{detail.before_qty} -> {detail.after_qty}"
            )
    if apply_changes:
        count = apply_corrections(changes, receipts)
        click.echo(f"Updated {count} receipts.")


@cli.command()
@user_option
def learned(user: str) -> None:
    """List learned pack quantities."""
    entries = _learned(user).snapshot()
    if not entries:
        click.echo("Nothing learned yet.")
        return
    for key in sorted(entries):
        click.echo(f"{key:<40} {entries[key]}")
