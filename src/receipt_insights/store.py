"""Receipt store abstraction and local filesystem implementation."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Protocol

from slugify import slugify

from receipt_insights.models import Receipt

if TYPE_CHECKING:
    from pathlib import Path

logger = logging.getLogger(__name__)


class ReceiptStore(Protocol):
    """Protocol for per-user receipt persistence backends."""

    def save(self, receipt: Receipt) -> str: ...

    def get(self, receipt_id: str) -> Receipt | None: ...

    def list_receipts(self) -> list[Receipt]: ...

    def delete(self, receipt_id: str) -> bool: ...


class LocalReceiptStore:
    """Local filesystem implementation of ReceiptStore.

    Directory layout:
    {root}/{user}/{YYYY}/{MM}/{YYYY-MM-DD}__{store}__{id}.json
    Receipts without a purchase date go under {root}/{user}/undated/.
    """

    def __init__(self, root: Path, user_id: str) -> None:
        self.root = root
        self.user_id = user_id

    @property
    def user_dir(self) -> Path:
        return self.root / self._slugify(self.user_id, 64)

    def save(self, receipt: Receipt) -> str:
        """Save a receipt, replacing any earlier version with the same id.

        Returns the path relative to the store root.
        """
        existing = self._find(receipt.id)
        file_path = self.user_dir / self._relative_name(receipt)
        file_path.parent.mkdir(parents=True, exist_ok=True)
        file_path.write_text(
            receipt.model_dump_json(by_alias=True, indent=2), encoding="utf-8"
        )
        if existing is not None and existing != file_path:
            existing.unlink()
        return str(file_path.relative_to(self.root))

    def get(self, receipt_id: str) -> Receipt | None:
        """Load a receipt by id, or None if it is not stored."""
        path = self._find(receipt_id)
        if path is None:
            return None
        return Receipt.model_validate_json(path.read_bytes())

    def list_receipts(self) -> list[Receipt]:
        """Load every receipt of the user, newest purchase first."""
        if not self.user_dir.exists():
            return []
        receipts = [
            Receipt.model_validate_json(path.read_bytes())
            for path in sorted(self.user_dir.rglob("*__*.json"))
        ]
        receipts.sort(
            key=lambda r: r.purchase_at.isoformat() if r.purchase_at else "",
            reverse=True,
        )
        return receipts

    def delete(self, receipt_id: str) -> bool:
        """Delete a receipt; returns False if it did not exist."""
        path = self._find(receipt_id)
        if path is None:
            return False
        path.unlink()
        logger.info("Deleted receipt %s", receipt_id)
        return True

    def _find(self, receipt_id: str) -> Path | None:
        if not self.user_dir.exists():
            return None
        safe_id = self._slugify(receipt_id, 80)
        for path in self.user_dir.rglob(f"*__{safe_id}.json"):
            return path
        return None

    def _relative_name(self, receipt: Receipt) -> str:
        store_slug = self._slugify(receipt.store_name or "inconnu", 50) or "inconnu"
        safe_id = self._slugify(receipt.id, 80)
        if receipt.purchase_at is None:
            return f"undated/undated__{store_slug}__{safe_id}.json"
        day = receipt.purchase_at.date()
        return f"{day.year}/{day.month:02d}/{day.isoformat()}__{store_slug}__{safe_id}.json"

    @staticmethod
    def _slugify(value: str, max_length: int) -> str:
        """Convert a value to a filesystem-safe slug."""
        return str(slugify(value, max_length=max_length))
