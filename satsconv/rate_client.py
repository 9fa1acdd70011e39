"""
BTC/USD rate client.

All HTTP calls to the ticker endpoint route through this module. A run asks
for the rate exactly once and holds the returned ``ExchangeRate`` until the
rewrite pass is finished; the client keeps no rate between calls.

Failures (network error, timeout, 4xx/5xx, bad JSON, no usable price) are
retried with exponential backoff. Once every attempt has failed the client
either returns the configured fallback rate or, under the ``abort`` policy,
raises ``RateUnavailableError``.
"""

import asyncio
import logging
import math
from typing import Any, Iterable, Literal, Optional

import httpx
from pydantic import BaseModel, ConfigDict, Field

from satsconv.config import settings

logger = logging.getLogger(__name__)

SOURCE_LIVE = "live"
SOURCE_FALLBACK = "fallback"


class ExchangeRate(BaseModel):
    """BTC price in USD and where it came from."""

    model_config = ConfigDict(frozen=True)

    btc_usd: float
    source: Literal["live", "fallback"] = Field(description="'live' from the API, 'fallback' after exhausted retries")


class RateUnavailableError(Exception):
    """Raised under the ``abort`` policy when no attempt produced a rate."""


def select_usd_price(payload: Any, accepted_quotes: Iterable[str]) -> Optional[float]:
    """
    Pick the BTC price from a ticker payload.

    Expects ``{"Data": {"LIST": [{"QUOTE": "USD", "PRICE": 64000.1}, ...]}}``
    and returns the price of the first entry whose quote currency is accepted
    and whose price is a valid positive number.

    Returns:
        The price, or ``None`` when no entry qualifies or the payload is malformed.
    """
    if not isinstance(payload, dict):
        return None
    data = payload.get("Data")
    if not isinstance(data, dict):
        return None
    entries = data.get("LIST")
    if not isinstance(entries, list):
        return None

    accepted = {q.upper() for q in accepted_quotes}
    for entry in entries:
        if not isinstance(entry, dict):
            continue
        quote = entry.get("QUOTE")
        if not isinstance(quote, str) or quote.upper() not in accepted:
            continue
        raw_price = entry.get("PRICE")
        if isinstance(raw_price, bool):
            continue
        try:
            price = float(raw_price)
        except (TypeError, ValueError):
            continue
        if math.isfinite(price) and price > 0:
            return price
    return None


class RateProvider:
    """
    Async client for the BTC ticker endpoint.

    Usage::

        provider = RateProvider()
        rate = await provider.fetch_rate()
        await provider.close()
    """

    def __init__(
        self,
        url: Optional[str] = None,
        max_attempts: Optional[int] = None,
        backoff_base: Optional[float] = None,
        fallback_rate: Optional[float] = None,
        exhausted_policy: Optional[str] = None,
        accepted_quotes: Optional[Iterable[str]] = None,
        timeout: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        """
        Initialise the provider. Every argument defaults to its ``settings`` value.

        Args:
            client: Pre-built ``httpx.AsyncClient`` (e.g. with a mock transport).
                When omitted the provider creates and owns one.
        """
        self._url: str = url or settings.rate_api_url
        self._max_attempts: int = max_attempts if max_attempts is not None else settings.rate_max_attempts
        self._backoff_base: float = backoff_base if backoff_base is not None else settings.rate_backoff_base
        self._fallback_rate: float = fallback_rate if fallback_rate is not None else settings.fallback_btc_usd_rate
        self._exhausted_policy: str = exhausted_policy or settings.rate_exhausted_policy
        self._accepted_quotes: tuple[str, ...] = tuple(
            accepted_quotes if accepted_quotes is not None else settings.accepted_quote_currencies
        )
        if self._max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self._exhausted_policy not in ("fallback", "abort"):
            raise ValueError(f"Unknown exhausted policy: {self._exhausted_policy!r}")

        self._client: httpx.AsyncClient = client or httpx.AsyncClient(
            timeout=httpx.Timeout(timeout if timeout is not None else settings.rate_request_timeout),
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def close(self) -> None:
        """Close the underlying HTTP client and release any held connections."""
        await self._client.aclose()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _attempt(self, attempt: int) -> Optional[float]:
        """
        Perform one GET against the ticker endpoint.

        Returns:
            A valid positive price, or ``None`` if this attempt failed for any reason.
        """
        logger.debug("Rate request [attempt %d/%d]: GET %s", attempt + 1, self._max_attempts, self._url)
        try:
            response = await self._client.get(self._url)
        except httpx.TimeoutException as exc:
            logger.error("Rate request timed out (attempt %d/%d) — %s", attempt + 1, self._max_attempts, exc)
            return None
        except httpx.RequestError as exc:
            logger.error("Rate network error (attempt %d/%d) — %s", attempt + 1, self._max_attempts, exc)
            return None

        if response.is_error:
            body_snippet = response.text[:200] if response.text else "<empty body>"
            logger.error(
                "Rate HTTP error %d (attempt %d/%d) — body: %s",
                response.status_code,
                attempt + 1,
                self._max_attempts,
                body_snippet,
            )
            return None

        try:
            payload = response.json()
        except ValueError as exc:
            logger.error("Rate JSON decode error (attempt %d/%d) — %s", attempt + 1, self._max_attempts, exc)
            return None

        price = select_usd_price(payload, self._accepted_quotes)
        if price is None:
            logger.error(
                "Rate payload has no usable %s price (attempt %d/%d)",
                "/".join(self._accepted_quotes),
                attempt + 1,
                self._max_attempts,
            )
        return price

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def fetch_rate(self) -> ExchangeRate:
        """
        Fetch the current BTC/USD rate.

        Sleeps ``backoff_base * 2**attempt`` seconds between failed attempts
        only; there is no delay before the first attempt or after the last.

        Returns:
            A live rate, or the fallback rate once all attempts failed.

        Raises:
            RateUnavailableError: All attempts failed and the policy is ``abort``.
        """
        for attempt in range(self._max_attempts):
            price = await self._attempt(attempt)
            if price is not None:
                logger.info("BTC/USD rate %.2f (live)", price)
                return ExchangeRate(btc_usd=price, source=SOURCE_LIVE)

            if attempt < self._max_attempts - 1:
                backoff_seconds = self._backoff_base * (2 ** attempt)
                logger.warning(
                    "Rate attempt %d/%d failed — retrying in %.1fs",
                    attempt + 1,
                    self._max_attempts,
                    backoff_seconds,
                )
                await asyncio.sleep(backoff_seconds)

        if self._exhausted_policy == "abort":
            logger.error("Rate unavailable after %d attempts — aborting run", self._max_attempts)
            raise RateUnavailableError(f"No BTC/USD rate after {self._max_attempts} attempts")

        logger.warning(
            "Rate unavailable after %d attempts — using fallback %.2f",
            self._max_attempts,
            self._fallback_rate,
        )
        return ExchangeRate(btc_usd=self._fallback_rate, source=SOURCE_FALLBACK)
