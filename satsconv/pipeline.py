"""
Conversion pass — one rewrite run over one root element.

Order of a run:
  1. bail out if rewriting is disabled or the page URL is browser-internal
  2. bail out if the root was already processed
  3. classify the page's dollar currency (once)
  4. await the BTC/USD rate (once; retries and fallback live in the provider)
  5. re-check the guard, mark the root, rewrite synchronously

Every expected failure ends in a ``ConversionReport`` with a status; the pass
itself only raises when handed something that is not an element.
"""

import logging
from typing import Literal, Optional

from bs4 import BeautifulSoup, NavigableString, Tag
from pydantic import BaseModel, Field

from satsconv.config import Settings, settings as default_settings
from satsconv.engines.currency_classifier import PageEvidence, classify_dollar_currency
from satsconv.engines.price_scanner import PriceTokenScanner
from satsconv.engines.tree_rewriter import ConversionRecord, rewrite_tree
from satsconv.rate_client import RateProvider, RateUnavailableError

logger = logging.getLogger(__name__)

# Attribute set on the root when a pass starts; its presence makes later passes no-ops
PROCESSED_ATTR: str = "data-sats-processed"

# URL schemes that belong to the browser itself, never to a page
_RESTRICTED_SCHEMES: tuple[str, ...] = (
    "chrome:",
    "chrome-extension:",
    "chrome-search:",
    "devtools:",
    "edge:",
    "about:",
    "moz-extension:",
    "view-source:",
)

_INVISIBLE_TAGS: tuple[str, ...] = ("script", "style", "noscript", "template")

Status = Literal["converted", "disabled", "restricted", "already_processed", "aborted"]


class ConversionReport(BaseModel):
    """Outcome of one conversion pass."""

    status: Status
    converted: int = 0
    currency: Optional[str] = None
    btc_usd: Optional[float] = None
    rate_source: Optional[str] = None
    conversions: list[ConversionRecord] = Field(default_factory=list)


def is_eligible_url(url: Optional[str]) -> bool:
    """Return False for browser-internal pages such as ``chrome://settings``."""
    if not url:
        return True
    lowered = url.strip().lower()
    return not lowered.startswith(_RESTRICTED_SCHEMES)


def is_processed(root: Tag) -> bool:
    return root.has_attr(PROCESSED_ATTR)


def html_page_text(soup: Tag) -> str:
    """Visible text of a document, skipping script/style content."""
    parts: list[str] = []
    for string in soup.find_all(string=True):
        parent = string.parent
        if parent is not None and parent.name in _INVISIBLE_TAGS:
            continue
        if type(string) is not NavigableString:
            continue
        parts.append(str(string))
    return " ".join(" ".join(parts).split())


async def run_conversion(
    root: Tag,
    evidence: Optional[PageEvidence],
    rate_provider: RateProvider,
    settings: Optional[Settings] = None,
    page_url: Optional[str] = None,
    scanner: Optional[PriceTokenScanner] = None,
) -> ConversionReport:
    """
    Run one conversion pass over *root*.

    Args:
        root: Element to rewrite. A ``BeautifulSoup`` document is accepted too.
        evidence: Classification hints; ``None`` means no hints (USD).
        rate_provider: Source of the BTC/USD rate.
        settings: Settings to honour; defaults to the module singleton.
        page_url: URL of the page, checked for browser-internal schemes.
        scanner: Custom token scanner.

    Returns:
        A ``ConversionReport`` describing what happened.

    Raises:
        TypeError: If *root* is not a ``bs4.Tag``.
    """
    if not isinstance(root, Tag):
        raise TypeError(f"run_conversion expects a bs4 Tag as root, got {type(root).__name__}")

    cfg = settings or default_settings

    if not cfg.enabled:
        logger.info("Price rewriting disabled — skipping pass")
        return ConversionReport(status="disabled")

    if not is_eligible_url(page_url):
        logger.info("Restricted page %r — skipping pass", page_url)
        return ConversionReport(status="restricted")

    if is_processed(root):
        logger.info("Root <%s> already processed — skipping pass", root.name)
        return ConversionReport(status="already_processed")

    classification = classify_dollar_currency(evidence, cfg.currency_usd_factors)

    try:
        rate = await rate_provider.fetch_rate()
    except RateUnavailableError as exc:
        logger.warning("Aborting pass — %s", exc)
        return ConversionReport(status="aborted", currency=classification.code)

    # Another pass may have finished while this one was waiting for the rate
    if is_processed(root):
        logger.info("Root <%s> processed by a concurrent pass — skipping", root.name)
        return ConversionReport(status="already_processed")

    root[PROCESSED_ATTR] = "true"

    conversions: list[ConversionRecord] = []
    converted = rewrite_tree(root, scanner, classification, rate, conversions=conversions)

    logger.info(
        "Conversion pass complete: %d price(s), currency=%s, btc_usd=%.2f (%s)",
        converted,
        classification.code,
        rate.btc_usd,
        rate.source,
    )
    return ConversionReport(
        status="converted",
        converted=converted,
        currency=classification.code,
        btc_usd=rate.btc_usd,
        rate_source=rate.source,
        conversions=conversions,
    )


def pick_root(soup: BeautifulSoup, selector: Optional[str] = None) -> Optional[Tag]:
    """
    Choose the element a pass should run over.

    With a *selector* the first match is returned (``None`` if nothing
    matches); otherwise ``<body>`` or, for fragments, the document itself.
    """
    if selector:
        return soup.select_one(selector)
    return soup.body or soup
