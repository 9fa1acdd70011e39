"""
Conversion routes.

Endpoints:
  POST /api/convert/      — Rewrite the prices in an HTML document as bitcoin
  GET  /api/convert/rate  — Current BTC/USD reference rate (live or fallback)

Expected failures never surface as 5xx: a failed rate fetch falls back (or
ends the pass as "aborted"), and a disabled or restricted page simply comes
back unchanged with the matching status.
"""

import logging
from typing import Optional

from bs4 import BeautifulSoup
from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel, Field

from satsconv.config import settings
from satsconv.engines.currency_classifier import PageEvidence
from satsconv.pipeline import ConversionReport, html_page_text, pick_root, run_conversion
from satsconv.rate_client import ExchangeRate, RateUnavailableError

logger = logging.getLogger(__name__)

router = APIRouter()

_HTML_PARSER: str = "html.parser"


class ConvertRequest(BaseModel):
    """An HTML document plus the evidence used to classify its dollar amounts."""

    html: str = Field(..., description="Document or fragment to rewrite")
    url: str = Field(default="", description="Page URL; its hostname feeds the currency classifier")
    locale: str = Field(default="", description="Reader locale, e.g. 'en-AU'")
    selector: Optional[str] = Field(
        default=None,
        description="CSS selector of the element to rewrite; defaults to <body> or the whole fragment",
    )


class ConvertResponse(BaseModel):
    html: str
    report: ConversionReport


# ---------------------------------------------------------------------------
# POST / — rewrite a document
# ---------------------------------------------------------------------------

@router.post("/", summary="Rewrite fiat prices as bitcoin", response_model=ConvertResponse)
async def convert_document(body: ConvertRequest, request: Request) -> ConvertResponse:
    """
    Run one conversion pass over the submitted HTML.

    The visible text of the whole document, the page URL and the locale are
    used as classification evidence; only the selected root is rewritten.

    Raises:
        HTTPException(404): When *selector* matches no element.
    """
    if not settings.enabled:
        logger.info("Conversion requested while disabled — returning document unchanged")
        return ConvertResponse(html=body.html, report=ConversionReport(status="disabled"))

    soup = BeautifulSoup(body.html, _HTML_PARSER)
    root = pick_root(soup, body.selector)
    if root is None:
        logger.warning("Selector %r matched no element", body.selector)
        raise HTTPException(status_code=404, detail=f"No element matches selector {body.selector!r}")

    evidence = PageEvidence.from_url(body.url, locale=body.locale, page_text=html_page_text(soup))
    report = await run_conversion(
        root,
        evidence,
        request.app.state.rate_provider,
        settings=settings,
        page_url=body.url,
    )

    return ConvertResponse(html=str(soup), report=report)


# ---------------------------------------------------------------------------
# GET /rate — current reference rate
# ---------------------------------------------------------------------------

@router.get("/rate", summary="Current BTC/USD rate", response_model=ExchangeRate)
async def get_rate(request: Request) -> ExchangeRate:
    """
    Return the BTC/USD rate a conversion pass would use right now.

    Raises:
        HTTPException(503): Only under the ``abort`` policy, when every attempt failed.
    """
    try:
        return await request.app.state.rate_provider.fetch_rate()
    except RateUnavailableError as exc:
        logger.error("Rate unavailable: %s", exc)
        raise HTTPException(
            status_code=503,
            detail="BTC rate temporarily unavailable. Please retry shortly.",
        ) from exc
