"""Tests for receipt_insights.ingest."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING
from unittest.mock import MagicMock

import pytest

from receipt_insights.extraction import FAILED_STORE_NAME
from receipt_insights.ingest import (
    apply_corrections,
    ingest_receipt,
    propose_quantity_corrections,
)
from receipt_insights.models import EnrichedLine, Receipt
from receipt_insights.store import LocalReceiptStore

if TYPE_CHECKING:
    from pathlib import Path

    from receipt_insights.learning import LearnedQuantities
    from receipt_insights.models import ExtractedReceipt, ReceiptImage


def _agent_returning(output: ExtractedReceipt) -> MagicMock:
    mock_result = MagicMock()
    mock_result.output = output
    mock_agent = MagicMock()
    mock_agent.run_sync.return_value = mock_result
    return mock_agent


def _stored_line(raw_label: str, **fields: object) -> EnrichedLine:
    values: dict[str, object] = {
        "raw_label": raw_label,
        "quantity": 1.0,
        "unit": "pcs",
        "category": "Frais",
        "std_unit": "pcs",
        "std_qty": 1.0,
    }
    values.update(fields)
    return EnrichedLine.model_validate(values)


def _stored_receipt() -> Receipt:
    return Receipt(
        id="rcpt-old",
        store_name="Carrefour",
        purchase_at=datetime(2024, 5, 2, tzinfo=UTC),
        currency="TND",
        total=9.0,
        lines=[
            _stored_line("Yaourt Délice", unit_price=1.2, line_total=4.8),
            _stored_line("Pain", category="Boulangerie", unit_price=0.2),
            _stored_line("Lait Gloria", unit_price=1.35),
        ],
    )


class TestIngestReceipt:
    """Tests for ingest_receipt()."""

    def test_extracts_enriches_and_saves(
        self,
        store_root: Path,
        learned: LearnedQuantities,
        sample_image: ReceiptImage,
        sample_extracted: ExtractedReceipt,
    ) -> None:
        receipts = LocalReceiptStore(store_root, "alice")

        receipt = ingest_receipt(
            sample_image,
            receipts=receipts,
            learned=learned,
            agent=_agent_returning(sample_extracted),
        )

        assert receipts.get(receipt.id) == receipt
        assert [line.quantity for line in receipt.lines] == [6, 4, 1]
        assert [line.quantity_source for line in receipt.lines] == [
            "pattern",
            "arithmetic",
            "extracted",
        ]
        assert receipt.confidence == 0.9

    def test_teaches_learned_store(
        self,
        store_root: Path,
        learned: LearnedQuantities,
        sample_image: ReceiptImage,
        sample_extracted: ExtractedReceipt,
    ) -> None:
        ingest_receipt(
            sample_image,
            receipts=LocalReceiptStore(store_root, "alice"),
            learned=learned,
            agent=_agent_returning(sample_extracted),
        )

        assert learned.get("yaourt delice", "Carrefour") == 4
        assert learned.get("riz 1kg", "Carrefour") is None

    def test_extraction_failure_still_saves_placeholder(
        self,
        store_root: Path,
        learned: LearnedQuantities,
        sample_image: ReceiptImage,
    ) -> None:
        agent = MagicMock()
        agent.run_sync.side_effect = TimeoutError("upstream timeout")
        receipts = LocalReceiptStore(store_root, "alice")

        receipt = ingest_receipt(
            sample_image, receipts=receipts, learned=learned, agent=agent
        )

        assert receipt.store_name == FAILED_STORE_NAME
        assert receipt.lines == []
        assert receipt.confidence == 0.0
        assert len(receipts.list_receipts()) == 1


class TestProposeQuantityCorrections:
    """Tests for propose_quantity_corrections()."""

    def test_arithmetic_correction(self) -> None:
        changes = propose_quantity_corrections([_stored_receipt()])

        assert len(changes) == 1
        change = changes[0]
        assert change.receipt_id == "rcpt-old"
        assert change.lines_updated == 1
        detail = change.details[0]
        assert detail.index == 0
        assert detail.label == "Yaourt Délice"
        assert detail.before_qty == 1
        assert detail.after_qty == 4
        assert change.new_lines[0].quantity == 4
        assert change.new_lines[0].quantity_source == "arithmetic"

    def test_unchanged_lines_kept_as_is(self) -> None:
        receipt = _stored_receipt()
        change = propose_quantity_corrections([receipt])[0]

        assert change.new_lines[1] is receipt.lines[1]
        assert len(change.new_lines) == len(receipt.lines)

    def test_learned_correction(self, learned: LearnedQuantities) -> None:
        learned.learn("lait gloria", 6, "Carrefour")

        change = propose_quantity_corrections([_stored_receipt()], learned=learned)[0]

        assert [d.index for d in change.details] == [0, 2]
        assert change.new_lines[2].quantity == 6

    def test_no_changes(self) -> None:
        receipt = Receipt(lines=[_stored_line("Pain", unit_price=0.2)])
        assert propose_quantity_corrections([receipt]) == []

    def test_does_not_learn(self, learned: LearnedQuantities) -> None:
        propose_quantity_corrections([_stored_receipt()], learned=learned)
        assert learned.snapshot() == {}


class TestApplyCorrections:
    """Tests for apply_corrections()."""

    def test_saves_new_lines(self, store_root: Path) -> None:
        receipts = LocalReceiptStore(store_root, "alice")
        receipts.save(_stored_receipt())
        changes = propose_quantity_corrections(receipts.list_receipts())

        assert apply_corrections(changes, receipts) == 1

        stored = receipts.get("rcpt-old")
        assert stored is not None
        assert stored.lines[0].quantity == 4
        assert stored.total == 9.0
        assert propose_quantity_corrections(receipts.list_receipts()) == []

    def test_missing_receipt_skipped(
        self, store_root: Path, caplog: pytest.LogCaptureFixture
    ) -> None:
        receipts = LocalReceiptStore(store_root, "alice")
        changes = propose_quantity_corrections([_stored_receipt()])

        with caplog.at_level(logging.WARNING):
            assert apply_corrections(changes, receipts) == 0

        assert "rcpt-old" in caplog.text
