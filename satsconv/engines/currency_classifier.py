"""
Currency Origin Classifier — decides which dollar a bare "$" means.

The "$" sign is shared by many currencies. The page gives only weak hints, so
the classifier checks them in a fixed order and takes the first that matches:

  1. an explicit currency keyword in the visible text ("AUSTRALIAN DOLLAR", "AUD")
  2. a country signal in the hostname (".com.au", "canada")
  3. the region part of the user locale ("en-au", "fr-ca")
  4. USD

A wrong guess only shifts the USD equivalent by the static factor, so the
classifier never raises and always returns a classification. "€" and "£" are
not ambiguous and map to EUR and GBP directly.
"""

import logging
import re
from typing import Mapping, Optional
from urllib.parse import urlsplit

from pydantic import BaseModel, ConfigDict, Field

from satsconv.config import settings

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

DOLLAR_SYMBOL: str = "$"
DEFAULT_CURRENCY: str = "USD"

# Non-ambiguous symbols and the currency each one always means
FIXED_SYMBOL_CURRENCIES: dict[str, str] = {
    "€": "EUR",
    "£": "GBP",
}


class _DollarSignals(BaseModel):
    """Evidence that points at one non-US dollar."""

    model_config = ConfigDict(frozen=True)

    code: str
    text_keywords: tuple[str, ...]
    host_labels: tuple[str, ...]
    host_names: tuple[str, ...]
    locale_regions: tuple[str, ...]


# Order matters: earlier entries win when a page mentions several currencies.
_DOLLAR_SIGNALS: tuple[_DollarSignals, ...] = (
    _DollarSignals(
        code="AUD",
        text_keywords=("AUSTRALIAN DOLLAR", "AUD"),
        host_labels=("au",),
        host_names=("australia",),
        locale_regions=("au",),
    ),
    _DollarSignals(
        code="CAD",
        text_keywords=("CANADIAN DOLLAR", "CAD"),
        host_labels=("ca",),
        host_names=("canada",),
        locale_regions=("ca",),
    ),
    _DollarSignals(
        code="NZD",
        text_keywords=("NEW ZEALAND DOLLAR", "NZD"),
        host_labels=("nz",),
        host_names=("newzealand", "new-zealand"),
        locale_regions=("nz",),
    ),
    _DollarSignals(
        code="SGD",
        text_keywords=("SINGAPORE DOLLAR", "SGD"),
        host_labels=("sg",),
        host_names=("singapore",),
        locale_regions=("sg",),
    ),
)


# ---------------------------------------------------------------------------
# Models (Pydantic v2)
# ---------------------------------------------------------------------------


class PageEvidence(BaseModel):
    """Read-only hints about where a page comes from and who is reading it."""

    model_config = ConfigDict(frozen=True)

    hostname: str = ""
    locale: str = ""
    page_text: str = ""

    @classmethod
    def from_url(cls, url: Optional[str], locale: Optional[str] = "", page_text: Optional[str] = "") -> "PageEvidence":
        """Build evidence from a full page URL instead of a bare hostname."""
        hostname = ""
        if url:
            try:
                hostname = urlsplit(url.strip()).hostname or ""
            except ValueError:
                logger.debug("Could not parse page URL %r — ignoring hostname signal", url)
        return cls(hostname=hostname, locale=locale or "", page_text=page_text or "")


class CurrencyClassification(BaseModel):
    """A currency code and the approximate USD value of one unit of it."""

    model_config = ConfigDict(frozen=True)

    code: str
    usd_factor: float = Field(gt=0, description="USD per one unit of this currency")


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _factor(code: str, factors: Mapping[str, float]) -> float:
    return factors.get(code) or factors.get(DEFAULT_CURRENCY) or 1.0


def _text_match(text: str) -> Optional[str]:
    """
    Return the first currency named in *text*.

    Currency names match anywhere ("Australian Dollars"); three-letter codes
    must stand alone so "AUDIO" or "ARCADE" don't count.
    """
    if not text:
        return None
    upper = text.upper()
    for signal in _DOLLAR_SIGNALS:
        for keyword in signal.text_keywords:
            if " " in keyword:
                if keyword in upper:
                    return signal.code
            elif re.search(rf"(?<![A-Z0-9]){re.escape(keyword)}(?![A-Z0-9])", upper):
                return signal.code
    return None


def _host_match(hostname: str) -> Optional[str]:
    """Match a country-code label (".com.au") or a country name in the hostname."""
    if not hostname:
        return None
    lowered = hostname.lower().rstrip(".")
    labels = lowered.split(".")
    for signal in _DOLLAR_SIGNALS:
        if labels[-1] in signal.host_labels:
            return signal.code
        if any(name in lowered for name in signal.host_names):
            return signal.code
    return None


def _locale_match(locale: str) -> Optional[str]:
    """Match the region subtag of a locale like "en-AU", "fr_CA" or "fr_CA.UTF-8"."""
    if not locale:
        return None
    # Drop POSIX ".encoding" and "@modifier" suffixes, as in "fr_CA.UTF-8"
    tag = re.split(r"[.@]", locale.strip().lower(), maxsplit=1)[0]
    parts = re.split(r"[-_]", tag)
    regions = parts[1:]
    for signal in _DOLLAR_SIGNALS:
        if any(region in signal.locale_regions for region in regions):
            return signal.code
    return None


# ---------------------------------------------------------------------------
# Public interface
# ---------------------------------------------------------------------------


def classify_dollar_currency(
    evidence: Optional[PageEvidence],
    factors: Optional[Mapping[str, float]] = None,
) -> CurrencyClassification:
    """
    Infer which currency a bare "$" on this page represents.

    Args:
        evidence: Hostname, locale and visible text of the page. ``None`` is
            treated as "no evidence".
        factors: USD factors per currency code; defaults to
            ``settings.currency_usd_factors``.

    Returns:
        The first matching classification, or USD when no signal matches.
    """
    factors = factors if factors is not None else settings.currency_usd_factors
    evidence = evidence or PageEvidence()

    checks = (
        ("text", lambda: _text_match(evidence.page_text)),
        ("hostname", lambda: _host_match(evidence.hostname)),
        ("locale", lambda: _locale_match(evidence.locale)),
    )
    for signal_name, check in checks:
        code = check()
        if code is not None and code in factors:
            logger.info("Dollar currency classified as %s from %s signal", code, signal_name)
            return CurrencyClassification(code=code, usd_factor=_factor(code, factors))
        if code is not None:
            logger.warning("%s signal matched %s but no USD factor is configured — ignoring", signal_name, code)

    logger.info("No currency signal matched — defaulting to %s", DEFAULT_CURRENCY)
    return CurrencyClassification(code=DEFAULT_CURRENCY, usd_factor=_factor(DEFAULT_CURRENCY, factors))


def resolve_currency(
    symbol: str,
    dollar_classification: CurrencyClassification,
    factors: Optional[Mapping[str, float]] = None,
) -> Optional[CurrencyClassification]:
    """
    Map a scanned symbol to the currency it stands for.

    "$" resolves to the page's dollar classification; fixed symbols resolve to
    their currency and static factor. Returns ``None`` for a symbol with no
    known currency or factor.
    """
    if symbol == DOLLAR_SYMBOL:
        return dollar_classification

    code = FIXED_SYMBOL_CURRENCIES.get(symbol)
    if code is None:
        logger.debug("No currency mapping for symbol %r", symbol)
        return None

    factors = factors if factors is not None else settings.currency_usd_factors
    factor = factors.get(code)
    if factor is None:
        logger.debug("No USD factor configured for %s", code)
        return None
    return CurrencyClassification(code=code, usd_factor=factor)
