"""Database connection helper."""

from __future__ import annotations

import psycopg
from psycopg.rows import dict_row

from receipt_insights.config import get_database_url

LEARNED_PRODUCTS_DDL = """\
CREATE TABLE IF NOT EXISTS learned_products (
    user_id TEXT NOT NULL,
    key TEXT NOT NULL,
    product_key TEXT NOT NULL,
    store_name TEXT NOT NULL,
    quantity INTEGER NOT NULL CHECK (quantity > 1),
    updated_at TIMESTAMPTZ NOT NULL,
    PRIMARY KEY (user_id, key)
)"""


def get_connection() -> psycopg.Connection[dict[str, object]]:
    """Create and return a new database connection."""
    return psycopg.connect(get_database_url(), row_factory=dict_row)


def ensure_schema(conn: psycopg.Connection[dict[str, object]]) -> None:
    """Create the tables used by the library if they do not exist."""
    conn.execute(LEARNED_PRODUCTS_DDL)
