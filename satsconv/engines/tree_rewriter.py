"""
Tree Rewriter — replaces prices in a BeautifulSoup tree with bitcoin spans.

The walk follows the document-order ``next_element`` chain under *root*. For
each eligible text node it first plans every replacement (scan + convert),
then swaps the node for ``text, span, text, span, ..., text`` with one
``replace_with`` call. The cursor then resumes *after* the last inserted node,
so the walk neither points at the detached original, skips the next sibling,
nor re-reads the spans it just inserted.

Skipped entirely:
  - script / style / noscript / template / textarea / title subtrees
  - links (``<a>``), so link text stays clickable and intact
  - elements already carrying the ``bitcoin-price`` class (prior output)
  - comments, CDATA, doctypes and whitespace-only strings
"""

import logging
from typing import Optional, Union

from bs4 import BeautifulSoup, NavigableString, PageElement, Tag
from pydantic import BaseModel, ConfigDict

from satsconv.engines.currency_classifier import CurrencyClassification
from satsconv.engines.price_scanner import PriceTokenScanner, default_scanner, parse_amount
from satsconv.engines.value_converter import ConversionResult, convert
from satsconv.rate_client import ExchangeRate

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

CONVERTED_CLASS: str = "bitcoin-price"
REPLACEMENT_TAG: str = "span"

# Containers whose text is not prose, or must not be touched
EXCLUDED_TAGS: frozenset[str] = frozenset(
    {"script", "style", "noscript", "template", "textarea", "title", "a"}
)


# ---------------------------------------------------------------------------
# Models (Pydantic v2)
# ---------------------------------------------------------------------------


class RewriteSpan(BaseModel):
    """One planned replacement inside a text node."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    offset_in_node: int
    length: int
    replacement: Tag
    result: ConversionResult


class ConversionRecord(BaseModel):
    """A price that was rewritten, as reported back to the caller."""

    original: str
    satoshis: int
    display_text: str
    unit: str
    currency_code: str


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _classes(tag: Tag) -> list[str]:
    value = tag.get("class") or []
    if isinstance(value, str):
        return value.split()
    return list(value)


def _is_excluded(tag: Tag) -> bool:
    return (tag.name or "").lower() in EXCLUDED_TAGS or CONVERTED_CLASS in _classes(tag)


def _after_subtree(element: PageElement) -> Optional[PageElement]:
    """Return the first element in document order that is not inside *element*."""
    last = element
    while isinstance(last, Tag) and last.contents:
        last = last.contents[-1]
    return last.next_element


def _owning_soup(root: Tag) -> BeautifulSoup:
    """Find the document *root* belongs to, for creating new tags."""
    if isinstance(root, BeautifulSoup):
        return root
    for parent in root.parents:
        if isinstance(parent, BeautifulSoup):
            return parent
    return BeautifulSoup("", "html.parser")


def _inside_excluded(root: Tag) -> bool:
    if _is_excluded(root):
        return True
    return any(isinstance(p, Tag) and _is_excluded(p) for p in root.parents)


def _plan_spans(
    text: str,
    soup: BeautifulSoup,
    scanner: PriceTokenScanner,
    classification: CurrencyClassification,
    rate: ExchangeRate,
) -> list[RewriteSpan]:
    """Read phase: scan *text* and build a replacement for every convertible token."""
    if not scanner.has_candidates(text):
        return []

    spans: list[RewriteSpan] = []
    for token in scanner.scan(text):
        amount = parse_amount(token)
        if not amount.is_valid:
            logger.debug("Dropping unparsable price %r", token.matched_text)
            continue

        result = convert(
            amount.numeric_value,
            token.symbol,
            classification,
            rate,
            matched_text=token.matched_text,
        )
        if result is None:
            continue

        replacement = soup.new_tag(
            REPLACEMENT_TAG,
            attrs={"class": CONVERTED_CLASS, "title": result.original_label},
        )
        replacement.string = result.display_text
        spans.append(
            RewriteSpan(
                offset_in_node=token.start_offset,
                length=token.length,
                replacement=replacement,
                result=result,
            )
        )
    return spans


def _splice_pieces(text: str, spans: list[RewriteSpan]) -> list[Union[NavigableString, Tag]]:
    """Interleave literal text with the planned replacements, dropping empty text."""
    pieces: list[Union[NavigableString, Tag]] = []
    cursor = 0
    for span in spans:
        if span.offset_in_node > cursor:
            pieces.append(NavigableString(text[cursor:span.offset_in_node]))
        pieces.append(span.replacement)
        cursor = span.offset_in_node + span.length
    if cursor < len(text):
        pieces.append(NavigableString(text[cursor:]))
    return pieces


# ---------------------------------------------------------------------------
# Public interface
# ---------------------------------------------------------------------------


def rewrite_tree(
    root: Tag,
    scanner: Optional[PriceTokenScanner],
    classification: CurrencyClassification,
    rate: ExchangeRate,
    conversions: Optional[list[ConversionRecord]] = None,
) -> int:
    """
    Rewrite every price under *root* in place.

    Args:
        root: Element (or whole ``BeautifulSoup`` document) to rewrite.
        scanner: Token scanner; ``None`` uses the default scanner.
        classification: What "$" means on this page.
        rate: BTC/USD rate for this run.
        conversions: Optional list that receives a ``ConversionRecord`` for
            every price that was rewritten.

    Returns:
        Number of prices converted.

    Raises:
        TypeError: If *root* is not a ``bs4.Tag``.
    """
    if not isinstance(root, Tag):
        raise TypeError(f"rewrite_tree expects a bs4 Tag as root, got {type(root).__name__}")

    scanner = scanner or default_scanner

    if _inside_excluded(root):
        logger.info("Root <%s> is inside an excluded element — nothing to rewrite", root.name)
        return 0

    soup = _owning_soup(root)
    stop = _after_subtree(root)
    converted = 0
    nodes_rewritten = 0

    # A BeautifulSoup document is not part of its own next_element chain
    node: Optional[PageElement] = root.contents[0] if root.contents else None
    while node is not None and node is not stop:
        if isinstance(node, Tag):
            node = _after_subtree(node) if _is_excluded(node) else node.next_element
            continue

        # Only plain text; Comment, CData, Doctype, Script etc. are subclasses
        if type(node) is not NavigableString or not node.strip():
            node = node.next_element
            continue

        text = str(node)
        spans = _plan_spans(text, soup, scanner, classification, rate)
        if not spans:
            node = node.next_element
            continue

        pieces = _splice_pieces(text, spans)
        try:
            node.replace_with(*pieces)
        except ValueError as exc:
            logger.warning("Could not replace text node %r — leaving it unchanged: %s", text[:80], exc)
            node = node.next_element
            continue

        converted += len(spans)
        nodes_rewritten += 1
        if conversions is not None:
            for span in spans:
                conversions.append(
                    ConversionRecord(
                        original=text[span.offset_in_node:span.offset_in_node + span.length],
                        satoshis=span.result.satoshis,
                        display_text=span.result.display_text,
                        unit=span.result.unit,
                        currency_code=span.result.currency_code,
                    )
                )

        # Resume after the last inserted piece, never at the detached original
        node = _after_subtree(pieces[-1])

    logger.info(
        "Rewrote %d price(s) in %d text node(s) under <%s>",
        converted,
        nodes_rewritten,
        root.name,
    )
    return converted
