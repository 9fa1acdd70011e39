"""
Price Token Scanner — finds currency amounts inside free text.

A price is a currency symbol, an optional single whitespace character, a
numeral and an optional magnitude word:

    $100        €1,234.50       £ 2M        $5 thousand      $12 500

Numerals are either grouped (1-3 leading digits, then comma/space separated
groups of exactly three) or a plain digit run, with an optional fractional part.
The magnitude word must end on a word boundary that is not a hyphen, so
"$5kg" scans as "$5" and "$20 T-shirts" carries no trillion multiplier.
"""

import logging
import math
import re
from typing import Iterable, Iterator, Optional

from pydantic import BaseModel, ConfigDict, Field

from satsconv.engines.magnitude import magnitude_alternation, multiplier_for

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

# Symbols the scanner recognises. Downstream code resolves each one to a
# currency through the classifier, so extending this tuple is enough.
CURRENCY_SYMBOLS: tuple[str, ...] = ("$", "€", "£")

# Thousands separators accepted inside grouped numerals
_GROUP_SEPARATORS: str = ",\u00a0 "

_NUMERAL_PATTERN: str = (
    rf"(?:\d{{1,3}}(?:[{_GROUP_SEPARATORS}]\d{{3}})+|\d+)(?:\.\d+)?"
)


# ---------------------------------------------------------------------------
# Models (Pydantic v2)
# ---------------------------------------------------------------------------


class PriceToken(BaseModel):
    """A candidate price found in a scanned string."""

    model_config = ConfigDict(frozen=True)

    matched_text: str
    symbol: str
    raw_number: str
    magnitude_word: Optional[str] = None
    start_offset: int = Field(ge=0, description="Offset of the match in the scanned string")
    length: int = Field(gt=0, description="Length of matched_text")

    @property
    def end_offset(self) -> int:
        return self.start_offset + self.length


class ParsedAmount(BaseModel):
    """Numeric value of a token after separators are stripped and the magnitude applied."""

    model_config = ConfigDict(frozen=True)

    numeric_value: float
    is_valid: bool


# ---------------------------------------------------------------------------
# Scanner
# ---------------------------------------------------------------------------


class PriceTokenScanner:
    """
    Regex-driven scanner producing ordered, non-overlapping ``PriceToken``s.

    Every call to :meth:`scan` starts a fresh ``finditer`` cursor, so scanning
    one string never affects where a later scan of another string begins.

    Usage::

        scanner = PriceTokenScanner()
        for token in scanner.scan("Only $5 thousand today"):
            amount = parse_amount(token)
    """

    def __init__(self, symbols: Iterable[str] = CURRENCY_SYMBOLS) -> None:
        self.symbols: tuple[str, ...] = tuple(symbols)
        if not self.symbols:
            raise ValueError("PriceTokenScanner needs at least one currency symbol")

        symbol_class = "".join(re.escape(s) for s in self.symbols)
        self._pattern: re.Pattern[str] = re.compile(
            rf"(?P<symbol>[{symbol_class}])\s?"
            rf"(?P<number>{_NUMERAL_PATTERN})"
            rf"(?:\s?(?P<magnitude>{magnitude_alternation()})(?![\w-]))?",
            re.IGNORECASE,
        )

    def has_candidates(self, text: str) -> bool:
        """Cheap pre-check: does *text* contain at least one price?"""
        return bool(text) and self._pattern.search(text) is not None

    def scan(self, text: str) -> Iterator[PriceToken]:
        """Lazily yield price tokens from *text*, left to right."""
        if not text:
            return
        for match in self._pattern.finditer(text):
            yield PriceToken(
                matched_text=match.group(0),
                symbol=match.group("symbol"),
                raw_number=match.group("number"),
                magnitude_word=match.group("magnitude"),
                start_offset=match.start(),
                length=match.end() - match.start(),
            )


def parse_amount(token: PriceToken) -> ParsedAmount:
    """
    Turn a token's numeral into a number.

    Grouping separators are removed and the magnitude multiplier applied. A
    numeral that fails to parse, or parses to a non-finite value, yields
    ``is_valid=False`` instead of raising.
    """
    cleaned = re.sub(rf"[{_GROUP_SEPARATORS}]", "", token.raw_number)
    try:
        base = float(cleaned)
    except ValueError:
        logger.debug("Unparsable numeral %r in %r", token.raw_number, token.matched_text)
        return ParsedAmount(numeric_value=math.nan, is_valid=False)

    value = base * multiplier_for(token.magnitude_word)
    if not math.isfinite(value):
        logger.debug("Non-finite amount for %r", token.matched_text)
        return ParsedAmount(numeric_value=math.nan, is_valid=False)

    return ParsedAmount(numeric_value=value, is_valid=True)


# Module-level default scanner for callers that don't need custom symbols
default_scanner = PriceTokenScanner()
