"""Keyword-based spending category classifier."""

from __future__ import annotations

DEFAULT_CATEGORY = "Autres"

# Ordered: the first category with a matching keyword wins, so entries
# listed earlier take priority for labels that match several categories.
CATEGORY_KEYWORDS: tuple[tuple[str, tuple[str, ...]], ...] = (
    (
        "Frais",
        (
            "lait",
            "yaourt",
            "yogourt",
            "fromage",
            "beurre",
            "creme",
            "crème",
            "oeuf",
            "œuf",
            "jambon",
            "salami",
            "mortadelle",
            "ricotta",
            "mozzarella",
            "danone",
            "delice",
            "délice",
        ),
    ),
    (
        "Boucherie",
        (
            "viande",
            "boeuf",
            "bœuf",
            "veau",
            "agneau",
            "poulet",
            "dinde",
            "escalope",
            "merguez",
            "saucisse",
            "hache",
            "haché",
        ),
    ),
    (
        "Poisson",
        (
            "poisson",
            "thon",
            "sardine",
            "saumon",
            "crevette",
            "daurade",
            "loup",
            "calamar",
            "maquereau",
        ),
    ),
    (
        "Boulangerie",
        (
            "pain",
            "baguette",
            "croissant",
            "brioche",
            "gateau",
            "gâteau",
            "biscuit",
            "madeleine",
            "viennoiserie",
        ),
    ),
    (
        "Boissons",
        (
            "eau",
            "jus",
            "soda",
            "coca",
            "boisson",
            "limonade",
            "sirop",
            "cafe",
            "café",
            "the ",
            "thé",
            "biere",
            "bière",
            "vin ",
        ),
    ),
    (
        "Hygiène",
        (
            "shampo",
            "savon",
            "dentifrice",
            "brosse a dent",
            "brosse à dent",
            "deodorant",
            "déodorant",
            "gel douche",
            "rasoir",
            "coton",
            "serviette hyg",
            "mouchoir",
            "papier toilette",
            "papier hyg",
        ),
    ),
    (
        "Entretien",
        (
            "lessive",
            "javel",
            "detergent",
            "détergent",
            "nettoyant",
            "liquide vaisselle",
            "vaisselle",
            "eponge",
            "éponge",
            "desodorisant",
            "désodorisant",
            "insecticide",
            "sac poubelle",
        ),
    ),
    (
        "Bébé",
        (
            "bebe",
            "bébé",
            "couche",
            "lingette",
            "biberon",
            "tetine",
            "tétine",
            "petit pot",
        ),
    ),
    (
        "Animaux",
        (
            "chat",
            "chien",
            "croquette",
            "litiere",
            "litière",
            "patee",
            "pâtée",
        ),
    ),
    (
        "Maison",
        (
            "ampoule",
            "bougie",
            "vaisselle jetable",
            "assiette",
            "verre",
            "casserole",
            "poele",
            "poêle",
            "rangement",
            "cintre",
            "pile",
        ),
    ),
    (
        "Électronique",
        (
            "cable",
            "câble",
            "chargeur",
            "ecouteur",
            "écouteur",
            "usb",
            "batterie",
            "television",
            "télévision",
            "telephone",
            "téléphone",
        ),
    ),
    (
        "Epicerie",
        (
            "riz",
            "pate",
            "pâte",
            "spaghetti",
            "couscous",
            "farine",
            "sucre",
            "sel ",
            "huile",
            "conserve",
            "tomate",
            "harissa",
            "epice",
            "épice",
            "cereale",
            "céréale",
            "chocolat",
            "confiture",
            "miel",
            "semoule",
            "lentille",
            "pois chiche",
        ),
    ),
)


def map_category_heuristic(label: str | None) -> str:
    """Return the spending category for a product label.

    Falls back to "Autres" when no keyword matches; never raises.
    """
    text = (label or "").lower()
    if not text.strip():
        return DEFAULT_CATEGORY
    for category, keywords in CATEGORY_KEYWORDS:
        if any(keyword in text for keyword in keywords):
            return category
    return DEFAULT_CATEGORY
