"""Purchase history and spending statistics over a set of receipts.

Every function here is pure: it takes the full receipt (or purchase)
collection, keeps no state between calls and returns an empty result for
empty input.
"""

from __future__ import annotations

import calendar
from collections import Counter, defaultdict
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from receipt_insights.categories import map_category_heuristic
from receipt_insights.models import (
    ALL_STORES,
    UNKNOWN_STORE,
    LastPurchase,
    MonthlyTotal,
    ProductPurchase,
    ProductTotals,
    ReceiptKpis,
)
from receipt_insights.normalize import normalize_product_key

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from receipt_insights.models import Receipt, ReceiptLine


def _timestamp(moment: datetime | None) -> float:
    """Seconds since the epoch; missing dates sort as the epoch itself."""
    if moment is None:
        return 0.0
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=UTC)
    return moment.timestamp()


def _amount(
    line_total: float | None, unit_price: float | None, quantity: float | None
) -> float:
    if line_total is not None:
        return line_total
    if unit_price is not None:
        return unit_price * (quantity if quantity else 1)
    return 0.0


def line_amount(line: ReceiptLine) -> float:
    """Spend for one line: its total, else unit price x quantity, else 0."""
    return _amount(line.line_total, line.unit_price, line.quantity)


def flatten_purchases_from_receipts(
    receipts: Iterable[Receipt],
) -> list[ProductPurchase]:
    """Return one purchase per receipt line that maps to a product key."""
    purchases: list[ProductPurchase] = []
    for receipt in receipts:
        for line in receipt.lines:
            product_key = normalize_product_key(
                line.normalized_label or line.raw_label or ""
            )
            if not product_key:
                continue
            quantity = line.quantity if line.quantity and line.quantity > 0 else 1
            purchases.append(
                ProductPurchase(
                    product_key=product_key,
                    raw_label=line.raw_label,
                    normalized_label=line.normalized_label,
                    purchase_at=receipt.purchase_at,
                    store_name=receipt.store_name,
                    quantity=quantity,
                    unit_price=line.unit_price,
                    line_total=line.line_total,
                    currency=receipt.currency,
                )
            )
    return purchases


def computed_unit_price(purchase: ProductPurchase) -> float | None:
    """Unit price of a purchase, derived from the line total when missing."""
    if purchase.unit_price is not None:
        return purchase.unit_price
    if purchase.line_total is not None and purchase.quantity:
        return purchase.line_total / purchase.quantity
    return None


def compute_last_purchase_by_product(
    purchases: Iterable[ProductPurchase],
) -> dict[str, LastPurchase]:
    """Return the latest purchase details per product key.

    Equal dates keep the purchase seen last.
    """
    latest: dict[str, tuple[float, LastPurchase]] = {}
    for purchase in purchases:
        when = _timestamp(purchase.purchase_at)
        previous = latest.get(purchase.product_key)
        if previous is None or when >= previous[0]:
            latest[purchase.product_key] = (
                when,
                LastPurchase(
                    last_purchased_at=purchase.purchase_at,
                    last_unit_price=computed_unit_price(purchase),
                    last_store_name=purchase.store_name,
                ),
            )
    return {key: last for key, (_, last) in latest.items()}


def group_history_by_product(
    purchases: Iterable[ProductPurchase],
) -> dict[str, list[ProductPurchase]]:
    """Group purchases by product key, newest first."""
    history: dict[str, list[ProductPurchase]] = defaultdict(list)
    for purchase in purchases:
        history[purchase.product_key].append(purchase)
    return {
        key: sorted(items, key=lambda p: _timestamp(p.purchase_at), reverse=True)
        for key, items in history.items()
    }


def spend_by_category(receipts: Iterable[Receipt]) -> dict[str, float]:
    """Sum line spend per category, classifying lines without one."""
    totals: dict[str, float] = defaultdict(float)
    for receipt in receipts:
        for line in receipt.lines:
            category = line.category or map_category_heuristic(
                line.normalized_label or line.raw_label
            )
            totals[category] += line_amount(line)
    return dict(totals)


def spend_by_store(receipts: Iterable[Receipt]) -> dict[str, float]:
    """Sum receipt totals per store."""
    totals: dict[str, float] = defaultdict(float)
    for receipt in receipts:
        totals[receipt.store_name or UNKNOWN_STORE] += receipt.total or 0.0
    return dict(totals)


def monthly_trend(receipts: Iterable[Receipt]) -> list[MonthlyTotal]:
    """Sum receipt totals per YYYY-MM, oldest month first."""
    totals: dict[str, float] = defaultdict(float)
    for receipt in receipts:
        if receipt.purchase_at is None:
            continue
        totals[receipt.purchase_at.strftime("%Y-%m")] += receipt.total or 0.0
    return [MonthlyTotal(month=month, total=totals[month]) for month in sorted(totals)]


def product_totals(purchases: Iterable[ProductPurchase]) -> dict[str, ProductTotals]:
    """Total spend and quantity per product key, in first-seen order."""
    totals: dict[str, ProductTotals] = {}
    for purchase in purchases:
        entry = totals.setdefault(purchase.product_key, ProductTotals())
        entry.total_spend += _amount(
            purchase.line_total, purchase.unit_price, purchase.quantity
        )
        entry.total_qty += purchase.quantity
    return totals


def compute_kpis(receipts: Sequence[Receipt]) -> ReceiptKpis:
    """Headline figures: total spend, average basket, receipt and item counts."""
    total_spend = sum(receipt.total or 0.0 for receipt in receipts)
    count_receipts = len(receipts)
    return ReceiptKpis(
        total_spend=total_spend,
        avg_basket=total_spend / count_receipts if count_receipts else 0.0,
        count_receipts=count_receipts,
        count_items=sum(len(receipt.lines) for receipt in receipts),
    )


def _months_before(moment: datetime, months: int) -> datetime:
    month_index = moment.year * 12 + moment.month - 1 - months
    year, month = divmod(month_index, 12)
    day = min(moment.day, calendar.monthrange(year, month + 1)[1])
    return moment.replace(year=year, month=month + 1, day=day)


def filter_receipts(
    receipts: Iterable[Receipt],
    *,
    store: str = ALL_STORES,
    months: int | None = None,
    now: datetime | None = None,
) -> list[Receipt]:
    """Keep receipts from one store (or ALL) within the last N months.

    Receipts without a purchase date are never excluded by the window.
    """
    end = now or datetime.now(UTC)
    start = _months_before(end, months) if months is not None else None

    selected: list[Receipt] = []
    for receipt in receipts:
        if store != ALL_STORES and receipt.store_name != store:
            continue
        if start is not None and receipt.purchase_at is not None:
            when = _timestamp(receipt.purchase_at)
            if not _timestamp(start) <= when <= _timestamp(end):
                continue
        selected.append(receipt)
    return selected


def display_name_for_product(history: Sequence[ProductPurchase]) -> str:
    """Pick the most frequent label in a product's history.

    Falls back to the label of the first (most recent) purchase.
    """
    if not history:
        return "Produit"
    labels = Counter(
        label
        for label in ((p.normalized_label or p.raw_label or "").strip() for p in history)
        if label
    )
    if labels:
        return labels.most_common(1)[0][0]
    first = history[0]
    return first.normalized_label or first.raw_label or "Produit"
