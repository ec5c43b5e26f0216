"""Pytest configuration and shared fixtures for the forecast scraper test suite.

This module provides hermetic test infrastructure with the following guarantees:
- No external network requests and no real browser (all I/O faked or mocked)
- Short, deterministic poll deadlines and zero settle delay
- Isolated state (the config singleton is cleared around every test)

Design Rationale:
    FakeSession implements the same narrow BaseSession surface the pipeline
    drives, so poller, locator, recovery and scraper are exercised end-to-end
    against scripted page behavior instead of Playwright internals.
"""

from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncGenerator, Callable

import pytest
from pytest_mock import MockerFixture
from unittest.mock import MagicMock

from config.settings import GlobalConfig
from src.browser import BaseSession
from src.exceptions import NavigationError
from src.locator import APEX_REGISTRY_PROBE, GLOBAL_SNAPSHOT_PROBE
from src.models import Target

DAY_MS = 86_400_000
BASE_X = 1_700_000_000_000


@pytest.fixture
def mock_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> GlobalConfig:
    """Provide isolated GlobalConfig with safe test defaults.

    Overrides the lru_cache singleton to prevent state leakage between tests.
    """
    from config.settings import get_config

    get_config.cache_clear()

    log_dir = tmp_path / "logs"
    log_dir.mkdir()

    test_env = {
        "APP_NAME": "ForecastScraper-Test",
        "ENVIRONMENT": "test",
        "DEBUG": "false",
        "HEADLESS": "true",
        "LOG_LEVEL": "DEBUG",
        "LOG_DIR": str(log_dir),
        "LOG_ROTATION": "1 day",
        "LOG_RETENTION": "1 day",
        "TICKER": "tsla",
        "EXCHANGE": "NASDAQ",
        "BASE_URL": "https://terminal.example.com/",
        "TIMEFRAMES": '["1m", "3m"]',
        "NAVIGATION_TIMEOUT_MS": "5000",
        "POLL_INTERVAL_MS": "10",
        "POLL_DEADLINE_MS": "200",
        "RETRY_SETTLE_DELAY_MS": "0",
        "WEBHOOK_URL": "https://hooks.example.com/secret-token",
        "WEBHOOK_TIMEOUT_SEC": "5",
    }

    for key, value in test_env.items():
        monkeypatch.setenv(key, value)

    config = get_config()

    yield config

    get_config.cache_clear()


def make_points(count: int = 3, start: float = 250.0) -> list[dict[str, Any]]:
    """Daily x/y points starting at BASE_X."""
    return [{"x": BASE_X + i * DAY_MS, "y": start + i * 1.5} for i in range(count)]


def make_series(name: str = "Bull Scenario", count: int = 3) -> dict[str, Any]:
    """An in-page series payload as the registry probe returns it."""
    return {"name": name, "points": make_points(count)}


class FakeSession(BaseSession):
    """Scripted stand-in for a loaded page.

    Args:
        target: Target the session belongs to.
        apex: Registry probe result once ready (list of series payloads or None).
        snapshot: Global snapshot probe result.
        document: Markup returned by content().
        ready_after: Number of registry probe calls that return null first.
        open_errors: Exceptions raised by successive open() calls.
        reload_errors: Exceptions raised by successive reload() calls.
        supports_scripts: False emulates a fetch-only session.
    """

    def __init__(
        self,
        target: Target,
        apex: list[dict[str, Any]] | None = None,
        snapshot: dict[str, Any] | None = None,
        document: str = "<html></html>",
        ready_after: int = 0,
        open_errors: list[Exception] | None = None,
        reload_errors: list[Exception] | None = None,
        supports_scripts: bool = True,
    ) -> None:
        super().__init__(target)
        self.apex = apex
        self.snapshot = snapshot
        self.document = document
        self.ready_after = ready_after
        self.open_errors = list(open_errors or [])
        self.reload_errors = list(reload_errors or [])
        self.supports_scripts = supports_scripts
        self.opens = 0
        self.reloads = 0
        self.evaluations: list[str] = []
        self.closed = False

    async def open(self) -> None:
        self.opens += 1
        if self.open_errors:
            raise self.open_errors.pop(0)

    async def reload(self) -> None:
        self.reloads += 1
        if self.reload_errors:
            raise self.reload_errors.pop(0)

    async def evaluate(self, script: str, arg: Any = None) -> Any:
        if not self.supports_scripts:
            raise NotImplementedError("no scripts")
        self.evaluations.append(script)
        if script == APEX_REGISTRY_PROBE:
            probes = self.evaluations.count(APEX_REGISTRY_PROBE)
            return self.apex if probes > self.ready_after else None
        if script == GLOBAL_SNAPSHOT_PROBE:
            return self.snapshot
        raise AssertionError("unexpected script")

    async def content(self) -> str:
        return self.document

    async def close(self) -> None:
        self.closed = True


class FakeProvider:
    """Session provider handing out FakeSessions keyed by target label."""

    def __init__(self, behaviors: dict[str, dict[str, Any]]) -> None:
        self.behaviors = behaviors
        self.sessions: list[FakeSession] = []

    @asynccontextmanager
    async def open_session(self, target: Target) -> AsyncGenerator[FakeSession, None]:
        session = FakeSession(target, **self.behaviors.get(target.label, {}))
        self.sessions.append(session)
        try:
            yield session
        finally:
            await session.close()


@pytest.fixture
def fake_provider_factory() -> Callable[[dict[str, dict[str, Any]]], FakeProvider]:
    """Factory fixture for scripted session providers.

    Example:
        provider = fake_provider_factory({"1m": {"apex": [make_series()]}})
    """
    return FakeProvider


@pytest.fixture
def target() -> Target:
    return Target(url="https://terminal.example.com/instrument/nasdaq/tsla/projection?tf=1m", label="1m")


@pytest.fixture
def navigation_error(target: Target) -> NavigationError:
    return NavigationError(url=target.url, reason="HTTP 503", label=target.label, status_code=503)


@pytest.fixture
def mock_page(mocker: MockerFixture) -> MagicMock:
    """Provide mocked Playwright Page object."""
    page = mocker.MagicMock()
    page.url = "https://terminal.example.com/instrument/nasdaq/tsla/projection?tf=1m"
    page.goto = mocker.AsyncMock(return_value=mocker.MagicMock(status=200))
    page.reload = mocker.AsyncMock(return_value=mocker.MagicMock(status=200))
    page.evaluate = mocker.AsyncMock(return_value=None)
    page.content = mocker.AsyncMock(return_value="<html></html>")
    page.close = mocker.AsyncMock()
    return page


@pytest.fixture
def mock_browser_context(mocker: MockerFixture, mock_page: MagicMock) -> MagicMock:
    """Provide mocked Playwright BrowserContext."""
    context = mocker.MagicMock()
    context.new_page = mocker.AsyncMock(return_value=mock_page)
    context.close = mocker.AsyncMock()
    context.add_init_script = mocker.AsyncMock()
    return context


@pytest.fixture
def mock_browser(mocker: MockerFixture, mock_browser_context: MagicMock) -> MagicMock:
    """Provide mocked Playwright Browser."""
    browser = mocker.MagicMock()
    browser.new_context = mocker.AsyncMock(return_value=mock_browser_context)
    browser.close = mocker.AsyncMock()
    return browser


@pytest.fixture
def mock_playwright(mocker: MockerFixture, mock_browser: MagicMock) -> MagicMock:
    """Patch async_playwright().start() to return a mocked Playwright."""
    playwright = mocker.MagicMock()
    playwright.chromium.launch = mocker.AsyncMock(return_value=mock_browser)
    playwright.stop = mocker.AsyncMock()

    starter = mocker.MagicMock()
    starter.start = mocker.AsyncMock(return_value=playwright)
    mocker.patch("src.browser.async_playwright", return_value=starter)

    return playwright


def pytest_configure(config: Any) -> None:
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers",
        "integration: marks tests as integration tests requiring full stack",
    )
