"""Product label normalization."""

from __future__ import annotations

import re
import unicodedata

# Unit and commerce words that say nothing about the product itself.
LABEL_STOPWORDS = frozenset(
    {
        "kg",
        "g",
        "l",
        "litre",
        "litres",
        "piece",
        "pcs",
        "pack",
        "promo",
        "offre",
        "tva",
        "ttc",
        "ht",
    }
)

_NON_ALNUM = re.compile(r"[^a-z0-9]+")


def strip_diacritics(text: str) -> str:
    """Remove combining marks after NFD decomposition ("é" -> "e")."""
    decomposed = unicodedata.normalize("NFD", text)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def normalize_product_key(label: str | None) -> str:
    """Turn a raw product label into the key used to join purchases.

    The result is lower-case ASCII words separated by single spaces, with
    unit and commerce stopwords removed. An empty string means the label
    cannot be tracked as a product.

    >>> normalize_product_key("Lait GLORIA 1L Promo")
    'lait gloria 1l'
    """
    if not label:
        return ""
    text = strip_diacritics(label.lower())
    words = _NON_ALNUM.sub(" ", text).split()
    return " ".join(w for w in words if w not in LABEL_STOPWORDS)
