"""Quantity inference and enrichment of extracted receipt lines.

The extraction service often returns a missing or wrong quantity for
multi-unit purchases. Three strategies recover it, in order:

1. pattern: "6x0.5=3.000" style count x unit price (= total) in the label,
   when the quantity is absent or at most one
2. arithmetic: line total / unit price lands on a whole number, when the
   quantity is absent, non-positive or exactly one
3. learned: a pack size previously confirmed for this product and store

Values outside the plausible retail range are ignored rather than clamped.
None of these functions raise on odd input; they fall back to "no
improvement".
"""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING

from receipt_insights.categories import map_category_heuristic
from receipt_insights.config import InferenceConfig
from receipt_insights.models import EnrichedLine, Receipt
from receipt_insights.normalize import normalize_product_key
from receipt_insights.units import normalize_unit, positive_or_none

if TYPE_CHECKING:
    from receipt_insights.learning import LearnedQuantities
    from receipt_insights.models import ExtractedReceipt, QuantitySource, ReceiptLine

logger = logging.getLogger(__name__)

DEFAULT_CONFIG = InferenceConfig()
DEFAULT_UNIT = "pcs"

# count x unit price, optionally "= total"; "2x100g" is a package size, not a price
PACK_PATTERN = re.compile(
    r"(?<![\d.])(\d{1,3})\s*[x×*]\s*(\d+(?:\.\d+)?)(?!\d|\.\d)"
    r"(?!\s*(?:kg|gr?|ml|cl|lt?|litres?)(?![a-z]))"
    r"(?:\s*=\s*(\d+(?:\.\d+)?))?"
)

LEARNABLE_SOURCES: frozenset[QuantitySource] = frozenset({"pattern", "arithmetic"})


@dataclass(frozen=True)
class QuantityFields:
    """The quantity-related fields of a line while inference runs."""

    quantity: float | None
    unit: str | None
    unit_price: float | None
    line_total: float | None
    source: QuantitySource = "extracted"

    @property
    def needs_quantity(self) -> bool:
        return self.quantity is None or self.quantity <= 1

    @property
    def quantity_unknown(self) -> bool:
        """Absent, non-positive or the extraction default of exactly one."""
        return self.quantity is None or self.quantity <= 0 or self.quantity == 1


def product_key_for(line: ReceiptLine) -> str:
    """Return the product key of a line, preferring its normalized label."""
    return normalize_product_key(line.normalized_label or line.raw_label)


def infer_quantity_from_label(
    label: str | None,
    fields: QuantityFields,
    config: InferenceConfig = DEFAULT_CONFIG,
) -> QuantityFields:
    """Apply a "N x P(=T)" pattern found in the label.

    Only fills gaps: an existing quantity above one, unit, unit price or
    line total is never replaced.
    """
    text = (label or "").lower().replace(",", ".")
    match = PACK_PATTERN.search(text)
    if match is None:
        return fields

    count = int(match.group(1))
    if not 1 <= count <= config.max_pack_count:
        return fields
    price = float(match.group(2))
    total = float(match.group(3)) if match.group(3) is not None else None

    updated = fields
    if fields.needs_quantity:
        updated = replace(updated, quantity=float(count), source="pattern")
    if updated.unit is None:
        updated = replace(updated, unit=DEFAULT_UNIT)
    if updated.unit_price is None:
        updated = replace(updated, unit_price=price)
    if updated.line_total is None:
        if total is not None:
            updated = replace(updated, line_total=total)
        else:
            computed = round(count * (updated.unit_price or price), 3)
            if math.isfinite(computed):
                updated = replace(updated, line_total=computed)
    return updated


def reconcile_quantity(
    fields: QuantityFields, config: InferenceConfig = DEFAULT_CONFIG
) -> QuantityFields:
    """Derive the quantity from line total / unit price when it is whole.

    Fractional quantities such as weights are left alone.
    """
    if not fields.quantity_unknown:
        return fields
    if fields.unit_price is None or fields.line_total is None:
        return fields
    if fields.unit_price <= 0:
        return fields

    ratio = round(fields.line_total / fields.unit_price, 3)
    if not math.isfinite(ratio):
        return fields
    nearest = round(ratio)
    if not 1 <= nearest <= config.max_pack_count:
        return fields
    if abs(ratio - nearest) >= config.quantity_tolerance:
        return fields
    if fields.quantity == nearest:
        return fields
    return replace(fields, quantity=float(nearest), source="arithmetic")


def apply_learned_quantity(
    fields: QuantityFields,
    product_key: str,
    store_name: str | None,
    learned: LearnedQuantities,
) -> QuantityFields:
    """Use a previously learned pack size when it beats the current quantity."""
    if not product_key:
        return fields
    quantity = learned.get(product_key, store_name)
    if quantity is None:
        return fields
    current = fields.quantity
    if current is None or current <= 1 or quantity > current:
        return replace(fields, quantity=float(quantity), source="learned")
    return fields


def infer_quantity(
    line: ReceiptLine,
    *,
    store_name: str | None = None,
    learned: LearnedQuantities | None = None,
    config: InferenceConfig = DEFAULT_CONFIG,
) -> QuantityFields:
    """Run the three inference strategies over one line."""
    label = line.normalized_label or line.raw_label
    fields = QuantityFields(
        quantity=line.quantity,
        unit=line.unit or None,
        unit_price=line.unit_price,
        line_total=line.line_total,
    )

    fields = infer_quantity_from_label(label, fields, config)
    fields = reconcile_quantity(fields, config)
    if learned is not None:
        fields = apply_learned_quantity(
            fields, product_key_for(line), store_name, learned
        )
    return fields


def compute_standard_unit_price(line: EnrichedLine) -> float | None:
    """Return the price per kg, L or piece, or None if it cannot be known."""
    if line.std_qty is None or line.std_qty <= 0:
        return None
    unit_price = line.unit_price
    if unit_price is None and line.line_total is not None and line.quantity:
        unit_price = line.line_total / line.quantity
    if unit_price is None:
        return None
    if line.line_total is not None:
        return line.line_total / line.std_qty
    return unit_price / line.std_qty


def enrich_line(
    line: ReceiptLine,
    *,
    store_name: str | None = None,
    learned: LearnedQuantities | None = None,
    config: InferenceConfig = DEFAULT_CONFIG,
) -> EnrichedLine:
    """Turn an extracted line into an enriched line; never raises."""
    fields = infer_quantity(line, store_name=store_name, learned=learned, config=config)
    label = line.normalized_label or line.raw_label
    standard = normalize_unit(fields.quantity, fields.unit, label)
    category = (line.category or "").strip() or map_category_heuristic(label)
    quantity = positive_or_none(fields.quantity)

    enriched = EnrichedLine.model_validate(
        {
            **line.model_dump(),
            "quantity": quantity if quantity is not None else 1.0,
            "unit": fields.unit or DEFAULT_UNIT,
            "unit_price": fields.unit_price,
            "line_total": fields.line_total,
            "category": category,
            "std_unit": standard.std_unit,
            "std_qty": standard.std_qty,
            "quantity_source": fields.source,
        }
    )
    enriched.standard_unit_price = compute_standard_unit_price(enriched)
    return enriched


def enrich_receipt(
    extracted: ExtractedReceipt,
    *,
    learned: LearnedQuantities | None = None,
    config: InferenceConfig = DEFAULT_CONFIG,
) -> Receipt:
    """Enrich every line of an extracted receipt and build the Receipt.

    Multi-unit quantities found by the pattern or arithmetic strategies
    are taught to the learned store.
    """
    lines: list[EnrichedLine] = []
    for index, raw in enumerate(extracted.lines):
        line = raw if raw.id else raw.model_copy(update={"id": f"ln-{index}"})
        enriched = enrich_line(
            line, store_name=extracted.store_name, learned=learned, config=config
        )
        if learned is not None and enriched.quantity_source in LEARNABLE_SOURCES:
            learned.learn(
                product_key_for(line), enriched.quantity or 0, extracted.store_name
            )
        lines.append(enriched)

    logger.debug(
        "Enriched %d lines for %s", len(lines), extracted.store_name or "unknown store"
    )
    return Receipt(
        store_name=extracted.store_name,
        store_id=extracted.store_id,
        purchase_at=extracted.purchase_at,
        currency=extracted.currency,
        total=extracted.total,
        subtotal=extracted.subtotal,
        tax_total=extracted.tax_total,
        lines=lines,
        confidence=0.7 if extracted.confidence is None else extracted.confidence,
        ocr_text=extracted.ocr_text,
    )
