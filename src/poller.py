"""Hydration polling for client-rendered chart pages.

The chart is rendered asynchronously after the document loads, so
readiness is detected positively by evaluating a probe at a fixed interval
until it yields usable series or the deadline elapses. Probe evaluations
are sequential awaits, never concurrent browser calls. When the deadline
hits, the in-flight evaluation is cancelled and its result discarded.
"""

import asyncio
from collections.abc import Awaitable, Callable

from config.settings import GlobalConfig, get_config
from src.browser import BaseSession
from src.exceptions import ReadinessTimeoutError
from src.locator import has_usable_series
from src.logger import get_logger
from src.models import RawSeries

log = get_logger(__name__)

Probe = Callable[[BaseSession], Awaitable[list[RawSeries] | None]]


class HydrationPoller:
    """Waits for a page to expose chart series.

    Attributes:
        interval_ms: Delay between probe evaluations.
        deadline_ms: Default upper bound for one wait.
    """

    def __init__(self, config: GlobalConfig | None = None) -> None:
        self.config = config or get_config()
        self.interval_ms = self.config.poll_interval_ms
        self.deadline_ms = self.config.poll_deadline_ms

    async def await_ready(
        self,
        session: BaseSession,
        probe: Probe,
        deadline_ms: int | None = None,
    ) -> list[RawSeries]:
        """Evaluate ``probe`` until it returns usable series.

        Args:
            session: Loaded page session to probe.
            probe: Side-effect-free locator, returns None while not ready.
            deadline_ms: Override of the configured deadline.

        Returns:
            The first usable probe result.

        Raises:
            ReadinessTimeoutError: If the deadline elapses first.
        """
        deadline = deadline_ms if deadline_ms is not None else self.deadline_ms
        attempts = 0

        async def _poll() -> list[RawSeries]:
            nonlocal attempts
            while True:
                attempts += 1
                result = await probe(session)
                if has_usable_series(result):
                    return result
                await asyncio.sleep(self.interval_ms / 1000)

        log.debug(
            "Polling for chart data",
            label=session.target.label,
            interval_ms=self.interval_ms,
            deadline_ms=deadline,
        )

        loop = asyncio.get_running_loop()
        started = loop.time()
        try:
            result = await asyncio.wait_for(_poll(), timeout=deadline / 1000)
        except TimeoutError as exc:
            log.warning(
                "Chart data not ready before deadline",
                label=session.target.label,
                deadline_ms=deadline,
                attempts=attempts,
            )
            raise ReadinessTimeoutError(
                url=session.target.url,
                label=session.target.label,
                deadline_ms=deadline,
                attempts=attempts,
            ) from exc

        log.info(
            "Chart data ready",
            label=session.target.label,
            attempts=attempts,
            elapsed_ms=round((loop.time() - started) * 1000),
            series=len(result),
        )
        return result
