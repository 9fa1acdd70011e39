"""
satsconv — finds fiat prices in text and rewrites them as satoshi / bitcoin amounts.

The engine lives in ``satsconv.engines``; ``satsconv.pipeline.run_conversion``
runs one pass over a BeautifulSoup tree and ``satsconv.main`` serves it over HTTP.
"""

__version__ = "1.0.0"
