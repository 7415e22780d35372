"""Conversion of line quantities to standard units (kg, L, pcs)."""

from __future__ import annotations

import math
import re
from typing import TYPE_CHECKING

from receipt_insights.models import StandardQuantity

if TYPE_CHECKING:
    from receipt_insights.models import StdUnit

# unit token -> (standard unit, divisor)
UNIT_DIVISORS: dict[str, tuple[StdUnit, float]] = {
    "kg": ("kg", 1.0),
    "g": ("kg", 1000.0),
    "gr": ("kg", 1000.0),
    "l": ("L", 1.0),
    "lt": ("L", 1.0),
    "ml": ("L", 1000.0),
    "pcs": ("pcs", 1.0),
    "piece": ("pcs", 1.0),
    "pièce": ("pcs", 1.0),
    "un": ("pcs", 1.0),
    "u": ("pcs", 1.0),
}

_NUMBER = r"(?<![\d.])(\d+(?:\.\d+)?)\s*"

# Checked in order against the lower-cased label; sizes describe one package.
LABEL_SIZE_PATTERNS: tuple[tuple[re.Pattern[str], StdUnit, float], ...] = (
    (re.compile(_NUMBER + r"kg(?![a-z])"), "kg", 1.0),
    (re.compile(_NUMBER + r"g(?![a-z])"), "kg", 1000.0),
    (re.compile(_NUMBER + r"l(?!t)(?:itres?)?(?![a-z])"), "L", 1.0),
    (re.compile(_NUMBER + r"ml(?![a-z])"), "L", 1000.0),
)
LABEL_PACK_PATTERN = re.compile(r"(?<![\d.])x\s*(\d{1,3})(?![\d.])")


def positive_or_none(value: float | None) -> float | None:
    """Return value when it is a finite number above zero, else None."""
    if value is None or not math.isfinite(value) or value <= 0:
        return None
    return value


def normalize_unit(
    quantity: float | None = None,
    unit: str | None = None,
    label: str | None = None,
) -> StandardQuantity:
    """Express a line quantity in kg, L or pieces.

    Resolution order:
    1. Explicit quantity and a known unit token
    2. A size ("500g", "1,5 L") or pack count ("x6") embedded in the label;
       sizes are multiplied by the line quantity when it is above one
    3. Pieces, using the quantity when positive, else 1

    Always returns a strictly positive quantity.
    """
    qty = positive_or_none(quantity)

    if qty is not None and unit:
        mapped = UNIT_DIVISORS.get(unit.strip().lower())
        if mapped is not None:
            std_unit, divisor = mapped
            return StandardQuantity(std_unit, qty / divisor)

    text = (label or "").lower().replace(",", ".")
    if text:
        for pattern, std_unit, divisor in LABEL_SIZE_PATTERNS:
            match = pattern.search(text)
            if match is None:
                continue
            size = float(match.group(1)) / divisor
            if size <= 0:
                continue
            if qty is not None and qty > 1:
                size *= qty
            return StandardQuantity(std_unit, size)

        match = LABEL_PACK_PATTERN.search(text)
        if match is not None and int(match.group(1)) > 0:
            return StandardQuantity("pcs", float(match.group(1)))

    return StandardQuantity("pcs", qty if qty is not None else 1.0)
