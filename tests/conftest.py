"""Shared test fixtures."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING

import pytest

from receipt_insights.learning import LearnedQuantities
from receipt_insights.models import (
    EnrichedLine,
    ExtractedReceipt,
    Receipt,
    ReceiptImage,
    ReceiptLine,
)

if TYPE_CHECKING:
    from pathlib import Path


def make_line(raw_label: str, **fields: object) -> EnrichedLine:
    """Build an enriched line with sensible defaults for aggregation tests."""
    values: dict[str, object] = {
        "raw_label": raw_label,
        "quantity": 1.0,
        "category": "Epicerie",
        "std_unit": "pcs",
        "std_qty": 1.0,
    }
    values.update(fields)
    return EnrichedLine.model_validate(values)


@pytest.fixture
def store_root(tmp_path: Path) -> Path:
    """Provide a temporary directory as the receipt store root."""
    root = tmp_path / "receipts"
    root.mkdir()
    return root


@pytest.fixture
def learned() -> LearnedQuantities:
    """Provide an in-memory learned-quantity cache with no backend."""
    return LearnedQuantities()


@pytest.fixture
def sample_image() -> ReceiptImage:
    """Provide a minimal uploaded receipt image."""
    return ReceiptImage(
        filename="ticket.jpg",
        content_type="image/jpeg",
        data=b"\xff\xd8\xff\xe0fake-jpeg",
    )


@pytest.fixture
def sample_extracted() -> ExtractedReceipt:
    """Provide an extraction result with one line per inference strategy."""
    return ExtractedReceipt(
        store_name="Carrefour",
        purchase_at=datetime(2025, 6, 15, 10, 30, tzinfo=UTC),
        currency="TND",
        total=12.7,
        lines=[
            ReceiptLine(raw_label="Eau Safia 6x0.5=3.000"),
            ReceiptLine(raw_label="Yaourt Délice", unit_price=1.2, line_total=4.8),
            ReceiptLine(raw_label="Riz 1kg", quantity=1, unit_price=4.9),
        ],
        confidence=0.9,
    )


@pytest.fixture
def sample_receipts() -> list[Receipt]:
    """Provide three stored receipts across two stores and two months."""
    return [
        Receipt(
            id="rcpt-1",
            store_name="Carrefour",
            purchase_at=datetime(2024, 1, 15, 9, 0, tzinfo=UTC),
            currency="TND",
            total=10.0,
            lines=[
                make_line("Lait Gloria", quantity=6, unit_price=1.35, line_total=8.1),
                make_line("Pain", category="Boulangerie", unit_price=0.2),
            ],
        ),
        Receipt(
            id="rcpt-2",
            store_name="Carrefour",
            purchase_at=datetime(2024, 3, 1, 18, 0, tzinfo=UTC),
            currency="TND",
            total=20.0,
            lines=[
                make_line("Lait Gloria", quantity=2, unit_price=1.4, line_total=2.8),
                make_line("Savon", category="Hygiène", line_total=3.5),
            ],
        ),
        Receipt(
            id="rcpt-3",
            store_name="Monoprix",
            purchase_at=datetime(2024, 3, 20, 12, 0, tzinfo=UTC),
            currency="TND",
            total=5.5,
            lines=[make_line("LAIT GLORIA", line_total=1.5)],
        ),
    ]
