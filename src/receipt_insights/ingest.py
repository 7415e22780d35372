"""Receipt ingestion and batch re-inference over stored receipts."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from receipt_insights.extraction import extract_receipt
from receipt_insights.inference import DEFAULT_CONFIG, enrich_line, enrich_receipt
from receipt_insights.models import LineChange, ProposedChange

if TYPE_CHECKING:
    from collections.abc import Iterable

    from pydantic_ai import Agent

    from receipt_insights.config import InferenceConfig
    from receipt_insights.learning import LearnedQuantities
    from receipt_insights.models import ExtractedReceipt, Receipt, ReceiptImage
    from receipt_insights.store import ReceiptStore

logger = logging.getLogger(__name__)


def ingest_receipt(
    image: ReceiptImage,
    *,
    receipts: ReceiptStore,
    learned: LearnedQuantities,
    agent: Agent[None, ExtractedReceipt] | None = None,
    config: InferenceConfig = DEFAULT_CONFIG,
) -> Receipt:
    """Extract, enrich and persist one uploaded receipt."""
    extracted = extract_receipt(image, agent=agent)
    receipt = enrich_receipt(extracted, learned=learned, config=config)
    path = receipts.save(receipt)
    logger.info(
        "Ingested receipt %s from %s with %d lines -> %s",
        receipt.id,
        receipt.store_name or "unknown store",
        len(receipt.lines),
        path,
    )
    return receipt


def propose_quantity_corrections(
    stored: Iterable[Receipt],
    *,
    learned: LearnedQuantities | None = None,
    config: InferenceConfig = DEFAULT_CONFIG,
) -> list[ProposedChange]:
    """Re-run quantity inference over stored receipts.

    Returns one ProposedChange per receipt where at least one line
    quantity would change. Nothing is written.
    """
    changes: list[ProposedChange] = []
    for receipt in stored:
        new_lines = []
        details: list[LineChange] = []
        for index, line in enumerate(receipt.lines):
            updated = enrich_line(
                line, store_name=receipt.store_name, learned=learned, config=config
            )
            if updated.quantity != line.quantity:
                details.append(
                    LineChange(
                        index=index,
                        label=line.normalized_label or line.raw_label or "",
                        before_qty=line.quantity,
                        after_qty=updated.quantity,
                    )
                )
                new_lines.append(updated)
            else:
                new_lines.append(line)
        if details:
            changes.append(
                ProposedChange(
                    receipt_id=receipt.id,
                    store_name=receipt.store_name,
                    new_lines=new_lines,
                    details=details,
                )
            )
    return changes


def apply_corrections(
    changes: Iterable[ProposedChange], receipts: ReceiptStore
) -> int:
    """Persist proposed line changes; returns the number of receipts updated."""
    updated = 0
    for change in changes:
        receipt = receipts.get(change.receipt_id)
        if receipt is None:
            logger.warning("Receipt %s no longer exists, skipping", change.receipt_id)
            continue
        receipts.save(receipt.model_copy(update={"lines": change.new_lines}))
        updated += 1
    return updated
