"""
Root conftest for the satsconv test suite.

Sets environment variables BEFORE any satsconv module is imported, so that
``satsconv.config.Settings`` is built with test-friendly values regardless of
the developer's local ``.env``.
"""

import os

# Must be set before any import of satsconv.config triggers Settings()
os.environ.setdefault("RATE_API_URL", "https://rates.test/spot/latest")
os.environ.setdefault("RATE_BACKOFF_BASE", "0")
os.environ.setdefault("ENABLED", "true")
