"""
Value Converter — fiat amount to a satoshi / bitcoin display string.

    usd_value = amount * usd_factor
    satoshis  = round_half_up(usd_value * 100_000_000 / btc_usd)

Amounts worth 0.5 BTC (50,000,000 sats) or more are shown in bitcoin with four
decimals ("0.5000 ₿"); everything below is an integer satoshi count with
thousands grouping ("200,000 sats"). The threshold is a hard boundary.
"""

import logging
import math
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict

from satsconv.engines.currency_classifier import CurrencyClassification, resolve_currency
from satsconv.rate_client import ExchangeRate

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Named constants
# ---------------------------------------------------------------------------
SATOSHIS_PER_BTC: int = 100_000_000
BTC_DISPLAY_THRESHOLD_SATS: int = 50_000_000  # 0.5 BTC
BTC_DECIMALS: int = 4
BITCOIN_SIGN: str = "₿"
SATS_SUFFIX: str = "sats"

UNIT_SATS = "sats"
UNIT_BTC = "btc"


# ---------------------------------------------------------------------------
# Output schema (Pydantic v2)
# ---------------------------------------------------------------------------
class ConversionResult(BaseModel):
    """A single converted price, ready to be rendered."""

    model_config = ConfigDict(frozen=True)

    satoshis: int
    display_text: str
    unit: Literal["sats", "btc"]
    original_label: str
    currency_code: str
    usd_value: float


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def round_half_up(value: float) -> int:
    """Round a non-negative value to the nearest integer, halves going up."""
    return int(math.floor(value + 0.5))


def format_display(satoshis: int) -> tuple[str, str]:
    """Return ``(display_text, unit)`` for a satoshi amount."""
    if satoshis >= BTC_DISPLAY_THRESHOLD_SATS:
        btc = satoshis / SATOSHIS_PER_BTC
        return f"{btc:.{BTC_DECIMALS}f} {BITCOIN_SIGN}", UNIT_BTC
    return f"{satoshis:,} {SATS_SUFFIX}", UNIT_SATS


def original_label(matched_text: str, currency_code: str) -> str:
    """Tooltip text: the untouched original price plus the inferred currency."""
    return f"Original Price: {matched_text} ({currency_code})"


# ---------------------------------------------------------------------------
# Converter
# ---------------------------------------------------------------------------
def convert(
    numeric_value: float,
    symbol: str,
    classification: CurrencyClassification,
    rate: ExchangeRate,
    matched_text: Optional[str] = None,
) -> Optional[ConversionResult]:
    """
    Convert a fiat amount into its bitcoin display form.

    Args:
        numeric_value: Parsed amount, magnitude already applied.
        symbol: Currency symbol the amount was written with.
        classification: What "$" means on this page.
        rate: BTC/USD rate for this run.
        matched_text: Original text of the price, used for the tooltip.
            Defaults to ``symbol`` followed by the value.

    Returns:
        A ``ConversionResult``, or ``None`` when the amount cannot be converted
        (non-positive rate, negative or non-finite amount, unknown symbol,
        or a satoshi value too large to represent).
    """
    if rate.btc_usd <= 0 or not math.isfinite(rate.btc_usd):
        logger.warning("Cannot convert with non-positive BTC/USD rate %r", rate.btc_usd)
        return None

    if not math.isfinite(numeric_value) or numeric_value < 0:
        logger.debug("Skipping unconvertible amount %r", numeric_value)
        return None

    currency = resolve_currency(symbol, classification)
    if currency is None:
        return None

    usd_value = numeric_value * currency.usd_factor
    raw_satoshis = usd_value * SATOSHIS_PER_BTC / rate.btc_usd
    if not math.isfinite(raw_satoshis):
        logger.debug("Skipping amount %r: satoshi value overflows at rate %r", numeric_value, rate.btc_usd)
        return None

    satoshis = round_half_up(raw_satoshis)
    display_text, unit = format_display(satoshis)

    label_source = matched_text if matched_text is not None else f"{symbol}{numeric_value:g}"

    return ConversionResult(
        satoshis=satoshis,
        display_text=display_text,
        unit=unit,
        original_label=original_label(label_source, currency.code),
        currency_code=currency.code,
        usd_value=usd_value,
    )
