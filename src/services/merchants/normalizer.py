"""
Merchant name normalization.

Turns noisy bank descriptions such as ``"SQ *COFFEE SHOP #1234"`` or
``"NETFLIX.COM"`` into a stable display name (``"Coffee Shop"``,
``"Netflix"``).
"""

import re
import logging
from typing import Mapping, Optional, Tuple

from services.merchants.config import KNOWN_MERCHANTS, STRIP_RULES, StripRule

logger = logging.getLogger(__name__)

_WHITESPACE = re.compile(r"\s+")
_NON_ALNUM = re.compile(r"[^a-z0-9]")


def simplify(name: str) -> str:
    """Lowercase and drop everything that is not a letter or digit."""
    return _NON_ALNUM.sub("", name.lower())


def title_case(name: str) -> str:
    return " ".join(word[:1].upper() + word[1:].lower() for word in name.split(" "))


def match_known_merchant(
    name: str,
    known_merchants: Mapping[str, str] = KNOWN_MERCHANTS
) -> Optional[str]:
    """Return the canonical brand for the first known key contained in the name."""
    simplified = simplify(name)
    if not simplified:
        return None
    for key, brand in known_merchants.items():
        if key in simplified:
            return brand
    return None


def strip_noise(raw_name: str, rules: Tuple[StripRule, ...] = STRIP_RULES) -> str:
    """Uppercase, apply the strip rules in order and collapse whitespace."""
    normalized = raw_name.strip().upper()
    for rule in rules:
        normalized = rule.pattern.sub(rule.replacement, normalized)
    return _WHITESPACE.sub(" ", normalized).strip()


def normalize_merchant_name(raw_name: str) -> str:
    """
    Normalize a raw transaction description to a canonical merchant name.

    Known brands map to their canonical spelling; anything else is title
    cased. If stripping removes everything, the raw description itself is
    title cased instead.
    """
    stripped = strip_noise(raw_name)

    brand = match_known_merchant(stripped)
    if brand:
        return brand

    if not stripped:
        fallback = _WHITESPACE.sub(" ", raw_name).strip()
        logger.debug(f"Normalization removed all of '{raw_name}', using raw description")
        return title_case(fallback)

    return title_case(stripped)
