"""Per-target retry and recovery orchestration.

Each target walks an explicit state machine:

    PENDING -> POLLING -> SUCCESS
                       -> RETRYING -> POLLING -> SUCCESS | FAILED
                                   -> FAILED

The first TargetError (navigation, readiness timeout, series not found or
empty result) triggers exactly one reload, a short settle delay and a
second pass of poll + locate + normalize. A second failure is terminal for
the target only; it contributes zero rows and the run goes on.
"""

import asyncio
from collections.abc import Callable
from contextlib import AbstractAsyncContextManager
from datetime import date
from enum import StrEnum

from pydantic import BaseModel, Field

from config.settings import GlobalConfig, get_config
from src.browser import BaseSession
from src.exceptions import StateTransitionError, TargetError
from src.locator import SeriesLocator
from src.logger import get_logger
from src.models import Row, Target
from src.normalizer import RowNormalizer
from src.poller import HydrationPoller

log = get_logger(__name__)

SessionFactory = Callable[[Target], AbstractAsyncContextManager[BaseSession]]


class TargetState(StrEnum):
    PENDING = "pending"
    POLLING = "polling"
    RETRYING = "retrying"
    SUCCESS = "success"
    FAILED = "failed"


ALLOWED_TRANSITIONS: dict[TargetState, frozenset[TargetState]] = {
    TargetState.PENDING: frozenset({TargetState.POLLING}),
    TargetState.POLLING: frozenset(
        {TargetState.SUCCESS, TargetState.RETRYING, TargetState.FAILED}
    ),
    TargetState.RETRYING: frozenset({TargetState.POLLING, TargetState.FAILED}),
    TargetState.SUCCESS: frozenset(),
    TargetState.FAILED: frozenset(),
}


class TargetMachine:
    """State holder for one target with a bounded retry budget.

    Attributes:
        target: Target being processed.
        state: Current state.
        history: Every state visited, in order.
        retries_remaining: Reloads still allowed.
        error: Last failure seen, if any.
    """

    RETRY_BUDGET = 1

    def __init__(self, target: Target, retry_budget: int = RETRY_BUDGET) -> None:
        self.target = target
        self.state = TargetState.PENDING
        self.history: list[TargetState] = [TargetState.PENDING]
        self.retries_remaining = retry_budget
        self.error: TargetError | None = None

    @property
    def is_terminal(self) -> bool:
        return not ALLOWED_TRANSITIONS[self.state]

    def transition(self, new_state: TargetState) -> None:
        """Move to ``new_state``.

        Raises:
            StateTransitionError: If the move is not allowed from the current state.
        """
        if new_state not in ALLOWED_TRANSITIONS[self.state]:
            raise StateTransitionError(
                label=self.target.label,
                current=self.state.value,
                attempted=new_state.value,
            )
        if new_state is TargetState.RETRYING:
            if self.retries_remaining <= 0:
                raise StateTransitionError(
                    label=self.target.label,
                    current=self.state.value,
                    attempted=new_state.value,
                )
            self.retries_remaining -= 1

        log.debug(
            "Target state changed",
            label=self.target.label,
            previous=self.state.value,
            current=new_state.value,
        )
        self.state = new_state
        self.history.append(new_state)

    def fail(self, error: TargetError) -> TargetState:
        """Record a failure and move to RETRYING if budget is left, else FAILED."""
        self.error = error
        if self.state is TargetState.POLLING and self.retries_remaining > 0:
            self.transition(TargetState.RETRYING)
        else:
            self.transition(TargetState.FAILED)
        return self.state


class TargetOutcome(BaseModel):
    """Result of processing one target."""

    target: Target
    state: TargetState
    rows: list[Row] = Field(default_factory=list)
    attempts: int = 0
    history: list[TargetState] = Field(default_factory=list)
    error_type: str | None = None
    error: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.state is TargetState.SUCCESS


class TargetRunner:
    """Drives open, poll, locate and normalize for a target with one retry.

    Attributes:
        session_factory: Opens a scoped session for a target.
        locator: Series locator used as the readiness probe.
        poller: Hydration poller.
        normalizer: Row normalizer.
    """

    def __init__(
        self,
        session_factory: SessionFactory,
        locator: SeriesLocator | None = None,
        poller: HydrationPoller | None = None,
        normalizer: RowNormalizer | None = None,
        config: GlobalConfig | None = None,
    ) -> None:
        self.config = config or get_config()
        self.session_factory = session_factory
        self.locator = locator or SeriesLocator(config=self.config)
        self.poller = poller or HydrationPoller(self.config)
        self.normalizer = normalizer or RowNormalizer(self.config)

    async def run(self, target: Target, forecast_date: date) -> TargetOutcome:
        """Process one target to a terminal state.

        Only TargetError is recovered; anything else propagates after the
        session has been closed.
        """
        machine = TargetMachine(target)
        rows: list[Row] = []
        attempts = 0

        log.info("Target started", label=target.label, url=target.url)

        async with self.session_factory(target) as session:
            while not machine.is_terminal:
                machine.transition(TargetState.POLLING)
                attempts += 1
                try:
                    if attempts == 1:
                        await session.open()
                    rows = await self._attempt(session, target, forecast_date)
                except TargetError as exc:
                    log.warning(
                        "Target attempt failed",
                        label=target.label,
                        attempt=attempts,
                        error_type=type(exc).__name__,
                        error=exc.message,
                    )
                    if machine.fail(exc) is TargetState.RETRYING:
                        await self._recover(session, machine)
                    continue

                machine.transition(TargetState.SUCCESS)

        return self._outcome(machine, rows, attempts)

    async def _attempt(
        self,
        session: BaseSession,
        target: Target,
        forecast_date: date,
    ) -> list[Row]:
        if session.supports_scripts:
            series = await self.poller.await_ready(session, self.locator.locate)
        else:
            series = await self.locator.locate_or_raise(session)
        return self.normalizer.normalize(series, target, forecast_date)

    async def _recover(self, session: BaseSession, machine: TargetMachine) -> None:
        log.info(
            "Reloading target for retry",
            label=machine.target.label,
            settle_delay_ms=self.config.retry_settle_delay_ms,
        )
        try:
            await session.reload()
        except TargetError as exc:
            log.warning(
                "Recovery reload failed",
                label=machine.target.label,
                error=exc.message,
            )
            machine.error = exc
            machine.transition(TargetState.FAILED)
            return
        await asyncio.sleep(self.config.retry_settle_delay_ms / 1000)

    def _outcome(self, machine: TargetMachine, rows: list[Row], attempts: int) -> TargetOutcome:
        succeeded = machine.state is TargetState.SUCCESS
        outcome = TargetOutcome(
            target=machine.target,
            state=machine.state,
            rows=rows if succeeded else [],
            attempts=attempts,
            history=list(machine.history),
            error_type=type(machine.error).__name__ if machine.error else None,
            error=machine.error.message if machine.error else None,
        )

        if succeeded:
            log.info(
                "Target succeeded",
                label=machine.target.label,
                rows=len(outcome.rows),
                attempts=attempts,
            )
        else:
            log.error(
                "Target failed after retry",
                label=machine.target.label,
                attempts=attempts,
                error_type=outcome.error_type,
                error=outcome.error,
            )
        return outcome
