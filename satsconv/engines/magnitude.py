"""
Magnitude words and suffixes that scale a preceding numeral.

"$5 thousand", "$2.5k" and "£3 M" all carry a magnitude; the scanner builds its
regex alternation from this table so the two never drift apart.
"""

from types import MappingProxyType
from typing import Mapping, Optional

MAGNITUDE_MULTIPLIERS: Mapping[str, float] = MappingProxyType(
    {
        "hundred": 1e2,
        "thousand": 1e3,
        "k": 1e3,
        "million": 1e6,
        "m": 1e6,
        "billion": 1e9,
        "b": 1e9,
        "trillion": 1e12,
        "t": 1e12,
    }
)


def multiplier_for(word: Optional[str]) -> float:
    """Return the multiplier for *word* (case-insensitive); 1.0 when absent or unknown."""
    if not word:
        return 1.0
    return MAGNITUDE_MULTIPLIERS.get(word.strip().lower(), 1.0)


def magnitude_alternation() -> str:
    """Regex alternation of all magnitude keys, longest first so "thousand" beats "t"."""
    return "|".join(sorted(MAGNITUDE_MULTIPLIERS, key=len, reverse=True))
