"""
Merchant name similarity.
"""

from rapidfuzz.distance import Levenshtein

from services.merchants.normalizer import simplify


def calculate_similarity(a: str, b: str) -> float:
    """
    Levenshtein similarity of two names, ``1 - distance / max(len)``.

    Both names are lowercased and reduced to letters and digits first.
    Identical names score 1.0; an empty name scores 0.0 against anything else.
    """
    norm_a = simplify(a)
    norm_b = simplify(b)

    if norm_a == norm_b:
        return 1.0
    if not norm_a or not norm_b:
        return 0.0

    distance = Levenshtein.distance(norm_a, norm_b)
    return 1 - distance / max(len(norm_a), len(norm_b))
