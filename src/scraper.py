"""Run-level extraction across all configured targets.

Targets are processed sequentially, each in its own session. Rows of
successful targets are appended to a single batch; a failed target adds
nothing and never affects rows already collected from the others.
"""

from datetime import UTC, date, datetime

from pydantic import BaseModel, Field

from config.settings import GlobalConfig, get_config
from src.logger import get_logger
from src.models import Batch, Row, Target
from src.recovery import SessionFactory, TargetOutcome, TargetRunner

log = get_logger(__name__)


def build_targets(config: GlobalConfig) -> list[Target]:
    """Expand configured timeframe labels into ordered targets."""
    return [Target(url=config.target_url(label), label=label) for label in config.timeframes]


class ScrapeResult(BaseModel):
    """Outcome of one run across all targets.

    Attributes:
        ticker: Instrument symbol.
        forecast_date: UTC date the run scraped on.
        scraped_at: UTC timestamp the run started.
        outcomes: One outcome per target, in target order.
    """

    ticker: str
    forecast_date: date
    scraped_at: datetime
    outcomes: list[TargetOutcome] = Field(default_factory=list)

    @property
    def rows(self) -> list[Row]:
        return [row for outcome in self.outcomes for row in outcome.rows]

    @property
    def failed_targets(self) -> list[str]:
        return [outcome.target.label for outcome in self.outcomes if not outcome.succeeded]

    @property
    def success_rate(self) -> float:
        """Share of targets that produced rows, between 0.0 and 1.0."""
        if not self.outcomes:
            return 0.0
        succeeded = sum(1 for outcome in self.outcomes if outcome.succeeded)
        return succeeded / len(self.outcomes)

    def to_batch(self) -> Batch:
        return Batch.assemble(
            ticker=self.ticker,
            forecast_date=self.forecast_date,
            scraped_at=self.scraped_at,
            rows=self.rows,
        )


class ForecastScraper:
    """Runs every target of the configured ticker through a TargetRunner.

    Example:
        async with BrowserManager.create(config) as browser:
            scraper = ForecastScraper(browser.open_session, config)
            result = await scraper.extract()
    """

    def __init__(
        self,
        session_factory: SessionFactory,
        config: GlobalConfig | None = None,
        runner: TargetRunner | None = None,
    ) -> None:
        self.config = config or get_config()
        self.runner = runner or TargetRunner(session_factory, config=self.config)

    async def extract(self, targets: list[Target] | None = None) -> ScrapeResult:
        """Scrape all targets once.

        Args:
            targets: Override of the configured targets.
        """
        if targets is None:
            targets = build_targets(self.config)

        scraped_at = datetime.now(UTC)
        result = ScrapeResult(
            ticker=self.config.ticker,
            forecast_date=scraped_at.date(),
            scraped_at=scraped_at,
        )

        log.info(
            "Starting extraction",
            ticker=self.config.ticker,
            targets=[target.label for target in targets],
            forecast_date=result.forecast_date.isoformat(),
        )

        for target in targets:
            outcome = await self.runner.run(target, result.forecast_date)
            result.outcomes.append(outcome)

        log.info(
            "Extraction complete",
            total_rows=len(result.rows),
            failed_targets=result.failed_targets,
            success_rate=f"{result.success_rate:.1%}",
            summary=[
                {
                    "label": outcome.target.label,
                    "state": outcome.state.value,
                    "attempts": outcome.attempts,
                    "rows": len(outcome.rows),
                }
                for outcome in result.outcomes
            ],
        )

        return result
