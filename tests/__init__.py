"""Test suite for the forecast scraper.

This package contains hermetic tests following the pytest framework.
Tests are structured to mirror the src/ package hierarchy for discoverability.

Testing Philosophy:
    - Use pytest-mock and httpx.MockTransport for browser and network isolation
    - Focus coverage on the locator chain, normalization and recovery logic
    - Avoid external dependencies - all I/O should be mocked
"""
