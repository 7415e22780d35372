"""Learned pack quantities: storage backends and the read-through cache."""

from __future__ import annotations

import logging
import math
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from pydantic import TypeAdapter
from slugify import slugify

from receipt_insights.db import ensure_schema, get_connection
from receipt_insights.models import ALL_STORES, LearnedPackEntry

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path

    import psycopg

logger = logging.getLogger(__name__)

_ENTRIES = TypeAdapter(dict[str, LearnedPackEntry])


def learned_key(product_key: str, store_name: str | None = None) -> str:
    """Return the store-specific key for a product ("Carrefour|lait gloria")."""
    return f"{store_name or ALL_STORES}|{product_key}"


@runtime_checkable
class LearnedPackStore(Protocol):
    """Protocol for per-user persistence of learned pack quantities."""

    def load_all(self) -> dict[str, LearnedPackEntry]: ...

    def upsert(self, key: str, entry: LearnedPackEntry) -> None: ...


class LocalLearnedPackStore:
    """JSON file implementation of LearnedPackStore.

    Layout: {root}/{user-slug}/learned_products.json
    """

    FILENAME = "learned_products.json"

    def __init__(self, root: Path, user_id: str) -> None:
        self.root = root
        self.user_id = user_id

    @property
    def path(self) -> Path:
        return self.root / str(slugify(self.user_id, max_length=64)) / self.FILENAME

    def load_all(self) -> dict[str, LearnedPackEntry]:
        """Return every entry in the user's document, or {} if none exists."""
        if not self.path.exists():
            return {}
        return _ENTRIES.validate_json(self.path.read_bytes())

    def upsert(self, key: str, entry: LearnedPackEntry) -> None:
        """Insert or replace a single entry."""
        entries = self.load_all()
        entries[key] = entry
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_bytes(_ENTRIES.dump_json(entries, by_alias=True, indent=2))


class PostgresLearnedPackStore:
    """PostgreSQL implementation of LearnedPackStore (learned_products table).

    The table is created on first use, so building the store never connects.
    """

    def __init__(
        self,
        user_id: str,
        connect: Callable[[], psycopg.Connection[dict[str, object]]] = get_connection,
    ) -> None:
        self.user_id = user_id
        self._connect = connect
        self._schema_ready = False

    def create_schema(self) -> None:
        with self._connect() as conn:
            self._ensure_schema(conn)

    def _ensure_schema(self, conn: psycopg.Connection[dict[str, object]]) -> None:
        if not self._schema_ready:
            ensure_schema(conn)
            self._schema_ready = True

    def load_all(self) -> dict[str, LearnedPackEntry]:
        with self._connect() as conn:
            self._ensure_schema(conn)
            rows = conn.execute(
                "SELECT key, product_key, store_name, quantity, updated_at "
                "FROM learned_products WHERE user_id = %s",
                (self.user_id,),
            ).fetchall()
        return {
            str(row["key"]): LearnedPackEntry(
                product_key=row["product_key"],
                store_name=row["store_name"],
                quantity=row["quantity"],
                updated_at=row["updated_at"],
            )
            for row in rows
        }

    def upsert(self, key: str, entry: LearnedPackEntry) -> None:
        with self._connect() as conn:
            self._ensure_schema(conn)
            conn.execute(
                "INSERT INTO learned_products "
                "(user_id, key, product_key, store_name, quantity, updated_at) "
                "VALUES (%s, %s, %s, %s, %s, %s) "
                "ON CONFLICT (user_id, key) DO UPDATE SET "
                "product_key = EXCLUDED.product_key, "
                "store_name = EXCLUDED.store_name, "
                "quantity = EXCLUDED.quantity, "
                "updated_at = EXCLUDED.updated_at",
                (
                    self.user_id,
                    key,
                    entry.product_key,
                    entry.store_name,
                    entry.quantity,
                    entry.updated_at,
                ),
            )


class LearnedQuantities:
    """Read-through cache of learned pack quantities for one user.

    Entries are keyed "{store|ALL}|{product_key}", with the largest quantity
    seen in any store kept under the bare product key as a fallback. Reads
    never touch the backend after the first load; writes go to the cache
    first and backend failures are only logged.
    """

    def __init__(self, store: LearnedPackStore | None = None) -> None:
        self.store = store
        self._quantities: dict[str, int] | None = None

    def _cache(self) -> dict[str, int]:
        if self._quantities is None:
            entries: dict[str, LearnedPackEntry] = {}
            if self.store is not None:
                try:
                    entries = self.store.load_all()
                except Exception:
                    logger.warning("Could not load learned pack sizes", exc_info=True)
            self._quantities = {key: e.quantity for key, e in entries.items()}
        return self._quantities

    def get(self, product_key: str, store_name: str | None = None) -> int | None:
        """Return the learned quantity for a product, store entry first."""
        if not product_key:
            return None
        cache = self._cache()
        learned = cache.get(learned_key(product_key, store_name))
        if learned is None:
            learned = cache.get(product_key)
        return learned

    def learn(
        self, product_key: str, quantity: float, store_name: str | None = None
    ) -> None:
        """Remember a confirmed multi-unit quantity for a product.

        Ignored unless quantity is a whole number above one. The global
        entry only ever grows.
        """
        if not product_key or isinstance(quantity, bool):
            return
        if not isinstance(quantity, (int, float)) or not math.isfinite(quantity):
            return
        if quantity <= 1 or not float(quantity).is_integer():
            return

        qty = int(quantity)
        cache = self._cache()
        now = datetime.now(UTC)
        store_label = store_name or ALL_STORES

        key = learned_key(product_key, store_name)
        cache[key] = qty
        self._persist(
            key,
            LearnedPackEntry(
                product_key=product_key,
                store_name=store_label,
                quantity=qty,
                updated_at=now,
            ),
        )

        previous = cache.get(product_key)
        if previous is None or previous < qty:
            cache[product_key] = qty
            self._persist(
                product_key,
                LearnedPackEntry(
                    product_key=product_key,
                    store_name=ALL_STORES,
                    quantity=qty,
                    updated_at=now,
                ),
            )

    def snapshot(self) -> dict[str, int]:
        """Return a copy of every cached key and quantity."""
        return dict(self._cache())

    def _persist(self, key: str, entry: LearnedPackEntry) -> None:
        if self.store is None:
            return
        try:
            self.store.upsert(key, entry)
        except Exception:
            logger.warning("Failed to save learned pack size %s", key, exc_info=True)


def open_learned_store(
    backend: str, *, user_id: str, root: Path
) -> LearnedPackStore:
    """Build the configured learned-store backend for a user."""
    if backend == "postgres":
        return PostgresLearnedPackStore(user_id)
    return LocalLearnedPackStore(root, user_id)
