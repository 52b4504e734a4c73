"""
Diversity post-filter for AI replacement candidates.

Near-duplicates are dropped by Jaccard similarity, then candidates are picked
round-robin across (protein, cuisine) groups so the final list spans
different bases and cuisines.
"""
import re
from typing import Any, Dict, List, Optional, Set

from nutriplan.core.constants import LimitsConstants

PROTEIN_KEYWORDS = [
    "chicken", "fish", "salmon", "turkey", "beef", "pork", "lamb", "egg", "eggs",
    "tofu", "paneer", "lentil", "lentils", "bean", "beans", "chickpea", "chickpeas",
    "shrimp", "prawn",
]
PLANT_PATTERN = re.compile(r"vegetable|vegan|vegetarian|tofu|lentil|quinoa|beans|chickpea")

CUISINE_KEYWORDS = [
    "indian", "mexican", "italian", "chinese", "greek", "thai", "mediterranean",
    "japanese", "american", "french", "middle eastern", "turkish",
]

OTHER = "other"


def tokenize(text: str) -> Set[str]:
    cleaned = re.sub(r"[^a-z0-9\s]", " ", str(text).lower())
    return set(cleaned.split())


def jaccard_similarity(a: str, b: str) -> float:
    """Token-set similarity in [0, 1]; empty input scores 0."""
    if not a or not b:
        return 0.0
    set_a, set_b = tokenize(a), tokenize(b)
    union = set_a | set_b
    if not union:
        return 0.0
    return len(set_a & set_b) / len(union)


def protein_tag(text: str) -> str:
    if not text:
        return OTHER
    lowered = str(text).lower()
    for protein in PROTEIN_KEYWORDS:
        if protein in lowered:
            return protein
    if PLANT_PATTERN.search(lowered):
        return "plant"
    return OTHER


def cuisine_tag(text: str) -> str:
    if not text:
        return OTHER
    lowered = str(text).lower()
    for cuisine in CUISINE_KEYWORDS:
        if cuisine in lowered:
            return cuisine
    return OTHER


def candidate_key_text(candidate: Dict[str, Any]) -> str:
    """name + ingredients + description, the text similarity is measured on."""
    name = candidate.get("name") or candidate.get("title") or ""
    ingredients = candidate.get("ingredients") or []
    if isinstance(ingredients, list):
        ingredients = " ".join(str(i) for i in ingredients)
    return f"{name} {ingredients} {candidate.get('description') or ''}"


def diversify(
    candidates: List[Dict[str, Any]],
    desired: int = LimitsConstants.REPLACEMENT_COUNT,
    preferred_cuisine: Optional[str] = None,
    threshold: float = LimitsConstants.SIMILARITY_THRESHOLD
) -> List[Dict[str, Any]]:
    """
    Select up to `desired` mutually diverse candidates.

    Args:
        candidates: Raw candidate dicts as returned by the AI
        desired: Number of candidates to keep
        preferred_cuisine: Groups of this cuisine are visited first
        threshold: Similarity above which a later candidate counts as a duplicate

    Returns:
        The selected candidates, in selection order
    """
    if not candidates:
        return []

    items = []
    for candidate in candidates:
        key_text = candidate_key_text(candidate)
        items.append({
            "candidate": candidate,
            "key_text": key_text,
            "protein": protein_tag(key_text),
            "cuisine": cuisine_tag(key_text),
        })

    unique = []
    for item in items:
        if not any(jaccard_similarity(u["key_text"], item["key_text"]) > threshold for u in unique):
            unique.append(item)

    # Insertion-ordered grouping by (protein, cuisine)
    groups: Dict[tuple, List[Dict[str, Any]]] = {}
    for item in unique:
        groups.setdefault((item["protein"], item["cuisine"]), []).append(item)

    preferred = (preferred_cuisine or "").strip().lower()
    preferred_groups = [g for key, g in groups.items() if preferred and key[1] == preferred]
    other_groups = [g for key, g in groups.items() if not (preferred and key[1] == preferred)]
    queues = [list(g) for g in preferred_groups + other_groups]

    selected: List[Dict[str, Any]] = []
    index = 0
    while len(selected) < desired and any(queues):
        queue = queues[index % len(queues)]
        if queue:
            selected.append(queue.pop(0))
        index += 1

    if len(selected) < desired:
        for item in unique:
            if item not in selected:
                selected.append(item)
            if len(selected) >= desired:
                break

    return [item["candidate"] for item in selected[:desired]]
