"""Tests for receipt_insights.extraction."""

from __future__ import annotations

import logging
from unittest.mock import MagicMock

import pytest
from pydantic_ai import BinaryContent

from receipt_insights.extraction import (
    FAILED_STORE_NAME,
    _build_prompt,
    create_extraction_agent,
    extract_receipt,
    fallback_receipt,
)
from receipt_insights.models import ExtractedReceipt, ReceiptImage


def _agent_returning(output: ExtractedReceipt) -> MagicMock:
    mock_result = MagicMock()
    mock_result.output = output

    mock_agent = MagicMock()
    mock_agent.run_sync.return_value = mock_result
    return mock_agent


class TestBuildPrompt:
    """Tests for _build_prompt."""

    def test_instruction_then_image(self, sample_image: ReceiptImage) -> None:
        prompt = _build_prompt(sample_image)

        assert isinstance(prompt[0], str)
        assert "ticket.jpg" in prompt[0]
        assert isinstance(prompt[1], BinaryContent)

    def test_image_bytes_and_media_type(self, sample_image: ReceiptImage) -> None:
        image = _build_prompt(sample_image)[1]

        assert isinstance(image, BinaryContent)
        assert image.data == sample_image.data
        assert image.media_type == "image/jpeg"

    def test_missing_content_type_defaults_to_jpeg(self) -> None:
        image = ReceiptImage(filename="scan", content_type="", data=b"\x89PNG")
        content = _build_prompt(image)[1]

        assert isinstance(content, BinaryContent)
        assert content.media_type == "image/jpeg"


class TestExtractReceipt:
    """Tests for extract_receipt."""

    def test_returns_agent_output(
        self, sample_image: ReceiptImage, sample_extracted: ExtractedReceipt
    ) -> None:
        mock_agent = _agent_returning(sample_extracted)

        result = extract_receipt(sample_image, agent=mock_agent)

        assert result == sample_extracted
        mock_agent.run_sync.assert_called_once()

    def test_passes_image_to_agent(
        self, sample_image: ReceiptImage, sample_extracted: ExtractedReceipt
    ) -> None:
        mock_agent = _agent_returning(sample_extracted)

        extract_receipt(sample_image, agent=mock_agent)

        prompt = mock_agent.run_sync.call_args[0][0]
        assert any(isinstance(part, BinaryContent) for part in prompt)

    def test_failure_returns_fallback(
        self, sample_image: ReceiptImage, caplog: pytest.LogCaptureFixture
    ) -> None:
        mock_agent = MagicMock()
        mock_agent.run_sync.side_effect = RuntimeError("overloaded")

        with caplog.at_level(logging.WARNING):
            result = extract_receipt(sample_image, agent=mock_agent)

        assert result.store_name == FAILED_STORE_NAME
        assert result.confidence == 0.0
        assert result.lines == []
        assert "Receipt extraction failed" in caplog.text


class TestFallbackReceipt:
    """Tests for fallback_receipt."""

    def test_shape(self) -> None:
        receipt = fallback_receipt()

        assert receipt.store_name == "Échec de l'analyse"
        assert receipt.currency == "TND"
        assert receipt.total == 0.0
        assert receipt.purchase_at is not None
        assert receipt.ocr_text


class TestCreateExtractionAgent:
    """Tests for create_extraction_agent."""

    def test_missing_api_key_raises(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)

        with pytest.raises(ValueError, match="ANTHROPIC_API_KEY"):
            create_extraction_agent()
