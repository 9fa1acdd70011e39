"""
Tests for satsconv.rate_client.

The ticker endpoint is replaced by ``httpx.MockTransport`` and
``asyncio.sleep`` is patched, so no test touches the network or waits.

Run with:
    pytest satsconv/tests/test_rate_client.py -v
"""

import logging
from typing import Callable
from unittest.mock import AsyncMock, call, patch

import httpx
import pytest

from satsconv.rate_client import (
    ExchangeRate,
    RateProvider,
    RateUnavailableError,
    select_usd_price,
)

_URL = "https://rates.test/spot/latest"
_ACCEPTED = ("USD", "USDT", "FDUSD")


def _payload(*entries: dict) -> dict:
    return {"Data": {"LIST": list(entries)}}


def _provider(handler: Callable[[httpx.Request], httpx.Response], **kwargs) -> RateProvider:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    options = {
        "url": _URL,
        "max_attempts": 3,
        "backoff_base": 2.0,
        "fallback_rate": 70_000.0,
        "accepted_quotes": _ACCEPTED,
    }
    options.update(kwargs)
    return RateProvider(client=client, **options)


class _Scripted:
    """Transport handler that returns a fixed sequence of responses or errors."""

    def __init__(self, *outcomes) -> None:
        self._outcomes = list(outcomes)
        self.calls = 0

    def __call__(self, request: httpx.Request) -> httpx.Response:
        outcome = self._outcomes[min(self.calls, len(self._outcomes) - 1)]
        self.calls += 1
        if isinstance(outcome, Exception):
            raise outcome
        # Fresh response per request so retries never share a consumed object
        return httpx.Response(outcome.status_code, headers=outcome.headers, content=outcome.content)


def _ok(price: float = 64_000.0, quote: str = "USD") -> httpx.Response:
    return httpx.Response(200, json=_payload({"QUOTE": quote, "PRICE": price}))


# ---------------------------------------------------------------------------
# select_usd_price
# ---------------------------------------------------------------------------
class TestSelectUsdPrice:
    def test_first_accepted_quote_wins(self) -> None:
        payload = _payload(
            {"QUOTE": "EUR", "PRICE": 59_000},
            {"QUOTE": "USDT", "PRICE": 64_100},
            {"QUOTE": "USD", "PRICE": 64_000},
        )
        assert select_usd_price(payload, _ACCEPTED) == 64_100

    def test_skips_accepted_quote_with_invalid_price(self) -> None:
        payload = _payload(
            {"QUOTE": "USD", "PRICE": 0},
            {"QUOTE": "USD", "PRICE": "n/a"},
            {"QUOTE": "FDUSD", "PRICE": None},
            {"QUOTE": "USDT", "PRICE": "63999.5"},
        )
        assert select_usd_price(payload, _ACCEPTED) == 63_999.5

    def test_quote_matching_is_case_insensitive(self) -> None:
        assert select_usd_price(_payload({"QUOTE": "usd", "PRICE": 1.0}), _ACCEPTED) == 1.0

    @pytest.mark.parametrize(
        "payload",
        [
            None,
            [],
            {},
            {"Data": None},
            {"Data": {"LIST": "nope"}},
            _payload(),
            _payload({"QUOTE": "EUR", "PRICE": 59_000}),
            _payload({"QUOTE": "USD", "PRICE": -5}),
            _payload({"QUOTE": "USD", "PRICE": True}),
            _payload({"QUOTE": "USD", "PRICE": "nan"}),
            _payload("garbage"),
        ],
    )
    def test_malformed_payloads(self, payload: object) -> None:
        assert select_usd_price(payload, _ACCEPTED) is None


# ---------------------------------------------------------------------------
# fetch_rate — success
# ---------------------------------------------------------------------------
@pytest.mark.asyncio
async def test_live_rate_first_attempt() -> None:
    handler = _Scripted(_ok(64_000.0))
    provider = _provider(handler)
    with patch("satsconv.rate_client.asyncio.sleep", new_callable=AsyncMock) as sleep:
        rate = await provider.fetch_rate()
    await provider.close()

    assert rate == ExchangeRate(btc_usd=64_000.0, source="live")
    assert handler.calls == 1
    sleep.assert_not_awaited()


@pytest.mark.asyncio
async def test_request_hits_configured_url() -> None:
    seen: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(str(request.url))
        return _ok()

    provider = _provider(handler)
    await provider.fetch_rate()
    await provider.close()

    assert seen == [_URL]


@pytest.mark.asyncio
async def test_recovers_after_failures_with_backoff() -> None:
    handler = _Scripted(
        httpx.ConnectError("boom"),
        httpx.Response(503, text="unavailable"),
        _ok(65_000.0, quote="FDUSD"),
    )
    provider = _provider(handler)
    with patch("satsconv.rate_client.asyncio.sleep", new_callable=AsyncMock) as sleep:
        rate = await provider.fetch_rate()
    await provider.close()

    assert rate.source == "live"
    assert rate.btc_usd == 65_000.0
    assert handler.calls == 3
    assert sleep.await_args_list == [call(2.0), call(4.0)]


# ---------------------------------------------------------------------------
# fetch_rate — failure classification
# ---------------------------------------------------------------------------
@pytest.mark.asyncio
@pytest.mark.parametrize(
    "outcome",
    [
        httpx.ConnectError("refused"),
        httpx.ReadTimeout("slow"),
        httpx.Response(500, text="oops"),
        httpx.Response(404),
        httpx.Response(200, text="<html>not json</html>"),
        httpx.Response(200, json={"Data": {"LIST": []}}),
        httpx.Response(200, json=_payload({"QUOTE": "EUR", "PRICE": 59_000})),
    ],
)
async def test_every_failure_kind_counts_as_attempt(outcome: object) -> None:
    handler = _Scripted(outcome)
    provider = _provider(handler)
    with patch("satsconv.rate_client.asyncio.sleep", new_callable=AsyncMock):
        rate = await provider.fetch_rate()
    await provider.close()

    assert handler.calls == 3
    assert rate == ExchangeRate(btc_usd=70_000.0, source="fallback")


# ---------------------------------------------------------------------------
# fetch_rate — exhaustion
# ---------------------------------------------------------------------------
@pytest.mark.asyncio
async def test_fallback_after_all_attempts_fail(caplog: pytest.LogCaptureFixture) -> None:
    handler = _Scripted(httpx.ConnectError("down"))
    provider = _provider(handler)
    with patch("satsconv.rate_client.asyncio.sleep", new_callable=AsyncMock) as sleep:
        with caplog.at_level(logging.WARNING, logger="satsconv.rate_client"):
            rate = await provider.fetch_rate()
    await provider.close()

    assert rate.source == "fallback"
    assert rate.btc_usd > 0
    # Delays only between attempts: none before the first, none after the last
    assert sleep.await_args_list == [call(2.0), call(4.0)]
    assert "using fallback" in caplog.text


@pytest.mark.asyncio
async def test_abort_policy_raises() -> None:
    handler = _Scripted(httpx.Response(502))
    provider = _provider(handler, exhausted_policy="abort")
    with patch("satsconv.rate_client.asyncio.sleep", new_callable=AsyncMock):
        with pytest.raises(RateUnavailableError):
            await provider.fetch_rate()
    await provider.close()

    assert handler.calls == 3


@pytest.mark.asyncio
async def test_single_attempt_never_sleeps() -> None:
    handler = _Scripted(httpx.ConnectError("down"))
    provider = _provider(handler, max_attempts=1)
    with patch("satsconv.rate_client.asyncio.sleep", new_callable=AsyncMock) as sleep:
        rate = await provider.fetch_rate()
    await provider.close()

    assert rate.source == "fallback"
    assert handler.calls == 1
    sleep.assert_not_awaited()


@pytest.mark.asyncio
async def test_provider_keeps_no_rate_between_calls() -> None:
    handler = _Scripted(_ok(60_000.0), _ok(61_000.0))
    provider = _provider(handler)
    first = await provider.fetch_rate()
    second = await provider.fetch_rate()
    await provider.close()

    assert (first.btc_usd, second.btc_usd) == (60_000.0, 61_000.0)


# ---------------------------------------------------------------------------
# Construction
# ---------------------------------------------------------------------------
def test_invalid_policy_rejected() -> None:
    with pytest.raises(ValueError):
        RateProvider(url=_URL, exhausted_policy="retry-forever", client=httpx.AsyncClient())


def test_zero_attempts_rejected() -> None:
    with pytest.raises(ValueError):
        RateProvider(url=_URL, max_attempts=0, client=httpx.AsyncClient())


def test_defaults_come_from_settings() -> None:
    provider = RateProvider(client=httpx.AsyncClient())
    assert provider._url == "https://rates.test/spot/latest"
    assert provider._max_attempts == 3
    assert provider._exhausted_policy == "fallback"
