"""Fetch-only page sessions over httpx.

Used when no browser is available or wanted. The raw document is fetched
once per open/reload and no script ever runs, so only the markup pattern
strategy can find series in these sessions.
"""

from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Self

import httpx

from config.settings import GlobalConfig, get_config
from src.browser import BaseSession
from src.exceptions import NavigationError
from src.logger import get_logger
from src.models import Target

log = get_logger(__name__)


class MarkupSession(BaseSession):
    """A session holding the raw HTML of one target page."""

    supports_scripts = False

    def __init__(self, target: Target, client: httpx.AsyncClient) -> None:
        super().__init__(target)
        self._client = client
        self._document: str | None = None

    async def open(self) -> None:
        url = self.target.url
        log.debug("Fetching document", url=url, label=self.target.label)

        try:
            response = await self._client.get(url)
        except httpx.TimeoutException as exc:
            raise NavigationError(
                url=url, reason=f"Fetch timeout: {exc}", label=self.target.label
            ) from exc
        except httpx.HTTPError as exc:
            raise NavigationError(url=url, reason=str(exc), label=self.target.label) from exc

        if response.status_code >= 400:
            raise NavigationError(
                url=url,
                reason=f"HTTP {response.status_code}",
                label=self.target.label,
                status_code=response.status_code,
            )

        self._document = response.text
        log.info(
            "Document fetched",
            url=url,
            label=self.target.label,
            status_code=response.status_code,
            size=len(self._document),
        )

    async def reload(self) -> None:
        self._document = None
        await self.open()

    async def evaluate(self, script: str, arg: Any = None) -> Any:
        raise NotImplementedError("Fetch-only sessions cannot execute page scripts")

    async def content(self) -> str:
        if self._document is None:
            raise NavigationError(
                url=self.target.url, reason="Document not loaded", label=self.target.label
            )
        return self._document

    async def close(self) -> None:
        self._document = None


class MarkupFetcher:
    """Owns the shared HTTP client and hands out markup sessions.

    Example:
        async with MarkupFetcher.create(config) as fetcher:
            async with fetcher.open_session(target) as session:
                await session.open()
    """

    def __init__(
        self,
        config: GlobalConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.config = config
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @classmethod
    @asynccontextmanager
    async def create(
        cls,
        config: GlobalConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> AsyncGenerator[Self, None]:
        if config is None:
            config = get_config()

        instance = cls(config, transport)
        instance._client = httpx.AsyncClient(
            headers={"User-Agent": config.user_agents[0]},
            timeout=config.navigation_timeout_ms / 1000,
            follow_redirects=True,
            transport=transport,
        )
        log.info("HTTP fetcher initialized")
        try:
            yield instance
        finally:
            await instance._client.aclose()
            instance._client = None
            log.info("HTTP fetcher closed")

    @asynccontextmanager
    async def open_session(self, target: Target) -> AsyncGenerator[MarkupSession, None]:
        if self._client is None:
            raise RuntimeError("MarkupFetcher used outside of create()")

        session = MarkupSession(target, self._client)
        try:
            yield session
        finally:
            await session.close()
