"""Configuration via environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

LEARNED_STORE_BACKENDS = ("local", "postgres")


@dataclass(frozen=True)
class InferenceConfig:
    """Thresholds used by quantity inference.

    Both values were tuned against observed receipt noise.
    """

    max_pack_count: int = 200
    quantity_tolerance: float = 0.05


def get_database_url() -> str:
    """Return the DATABASE_URL from the environment."""
    url = os.environ.get("DATABASE_URL")
    if not url:
        msg = "DATABASE_URL environment variable is required"
        raise ValueError(msg)
    return url


def get_store_path() -> Path:
    """Return the RECEIPTS_STORE_PATH, defaulting to ./data/receipts.

    Always resolves to an absolute path to avoid issues if the
    working directory changes during execution.
    """
    return Path(os.environ.get("RECEIPTS_STORE_PATH", "./data/receipts")).resolve()


def get_learned_store_backend() -> str:
    """Return the LEARNED_STORE backend name (local or postgres)."""
    backend = os.environ.get("LEARNED_STORE", "local").strip().lower()
    if backend not in LEARNED_STORE_BACKENDS:
        msg = (
            f"LEARNED_STORE must be one of {', '.join(LEARNED_STORE_BACKENDS)}, "
            f"got {backend!r}"
        )
        raise ValueError(msg)
    return backend


def get_inference_config() -> InferenceConfig:
    """Build inference thresholds from environment variables.

    Optional: PACK_MAX_COUNT (default 200), QUANTITY_TOLERANCE (default 0.05)
    """
    defaults = InferenceConfig()

    max_count_str = os.environ.get("PACK_MAX_COUNT", str(defaults.max_pack_count))
    tolerance_str = os.environ.get(
        "QUANTITY_TOLERANCE", str(defaults.quantity_tolerance)
    )

    max_pack_count = int(max_count_str)
    if max_pack_count < 1:
        msg = "PACK_MAX_COUNT must be a positive integer"
        raise ValueError(msg)

    quantity_tolerance = float(tolerance_str)
    if not 0 < quantity_tolerance < 0.5:
        msg = "QUANTITY_TOLERANCE must be between 0 and 0.5"
        raise ValueError(msg)

    return InferenceConfig(
        max_pack_count=max_pack_count,
        quantity_tolerance=quantity_tolerance,
    )


def get_anthropic_api_key() -> str:
    """Return the ANTHROPIC_API_KEY from the environment."""
    key = os.environ.get("ANTHROPIC_API_KEY")
    if not key:
        msg = "ANTHROPIC_API_KEY environment variable is required"
        raise ValueError(msg)
    return key


def get_llm_model() -> str:
    """Return the LLM model identifier.

    Defaults to claude-haiku-4-5-20251001.
    """
    return os.environ.get("LLM_MODEL", "claude-haiku-4-5-20251001")


def get_log_level() -> str:
    """Return the LOG_LEVEL name, defaulting to INFO."""
    return os.environ.get("LOG_LEVEL", "INFO").strip().upper() or "INFO"
