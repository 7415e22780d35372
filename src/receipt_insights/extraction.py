"""LLM-based receipt extraction using pydantic-ai."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from pydantic_ai import Agent, BinaryContent

from receipt_insights.config import get_anthropic_api_key, get_llm_model
from receipt_insights.models import ExtractedReceipt

if TYPE_CHECKING:
    from receipt_insights.models import ReceiptImage

logger = logging.getLogger(__name__)

FAILED_STORE_NAME = "Échec de l'analyse"
FALLBACK_CURRENCY = "TND"

_SYSTEM_PROMPT = """\
You extract structured data from photos of grocery receipts (mostly \
Carrefour Tunisia). Return:

- storeName, storeId, purchaseAt (ISO 8601 date-time), currency (ISO 4217, \
usually TND)
- total, subtotal, taxTotal as numbers with up to three decimals
- lines: one entry per purchased article with rawLabel exactly as printed, \
and quantity, unit, unitPrice, lineTotal, vatRate and barcode when present
- ocrText: the raw text you read
- confidence: 0.0 to 1.0, below 0.5 if the image may not be a receipt

An article can span three printed lines (label and price, barcode, then \
"qty x unit price"); merge them into a single line entry. Leave a field out \
rather than guessing it.\
"""

_USER_PROMPT = "Extract the receipt data from this image."


def create_extraction_agent() -> Agent[None, ExtractedReceipt]:
    """Create a pydantic-ai Agent configured for receipt extraction."""
    # Ensure API key is available (fail fast)
    get_anthropic_api_key()

    model_name = get_llm_model()
    return Agent(
        f"anthropic:{model_name}",
        output_type=ExtractedReceipt,
        system_prompt=_SYSTEM_PROMPT,
    )


def fallback_receipt() -> ExtractedReceipt:
    """Return the empty receipt recorded when extraction fails."""
    return ExtractedReceipt(
        store_name=FAILED_STORE_NAME,
        store_id="",
        purchase_at=datetime.now(UTC),
        currency=FALLBACK_CURRENCY,
        total=0.0,
        subtotal=0.0,
        tax_total=0.0,
        lines=[],
        ocr_text=(
            "The extraction service did not return a result. Retry with a "
            "smaller image or check the API configuration."
        ),
        confidence=0.0,
    )


def extract_receipt(
    image: ReceiptImage,
    *,
    agent: Agent[None, ExtractedReceipt] | None = None,
) -> ExtractedReceipt:
    """Extract structured receipt data from an uploaded image.

    Accepts an optional agent for dependency injection in tests. Any
    failure of the extraction service yields fallback_receipt().
    """
    if agent is None:
        agent = create_extraction_agent()

    logger.info("Extracting %s (%d bytes)", image.filename, len(image.data))
    try:
        result: Any = agent.run_sync(_build_prompt(image))
    except Exception:
        logger.warning("Receipt extraction failed for %s", image.filename, exc_info=True)
        return fallback_receipt()
    return result.output  # type: ignore[no-any-return]


def _build_prompt(image: ReceiptImage) -> list[str | BinaryContent]:
    """Build the user prompt: an instruction followed by the image."""
    media_type = image.content_type or "image/jpeg"
    return [
        f"{_USER_PROMPT} File: {image.filename}",
        BinaryContent(data=image.data, media_type=media_type),
    ]
