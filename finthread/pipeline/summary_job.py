from __future__ import annotations

import time
from datetime import datetime, timezone
from typing import Callable, List, Optional

from ..errors import FinThreadError
from ..models import Headline
from ..output.formatter import format_summary
from ..output.pipeline_reporter import RunReport, StageOutcome, StageStatus
from ..output.telegram import Publisher
from ..processors.composer import Composer
from ..storage.base import EventStore, NewsStore
from ..utils.logging import get_logger
from .retry import run_attempts

logger = get_logger("finthread.pipeline.summary")

MIN_ITEMS = 5
HEADLINES_LIMIT = 20
MAX_TOKENS = 2048


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SummaryJob:
    """Periodic digest of what was published (and released) since a cutoff.

    Store and composer failures retry the whole attempt after a fixed delay.
    A publish failure is final since the channel may have delivered the
    message anyway.
    """

    def __init__(
        self,
        composer: Composer,
        publisher: Publisher,
        news_store: NewsStore,
        event_store: Optional[EventStore] = None,
        *,
        attempts: int = 5,
        delay: float = 600.0,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.composer = composer
        self.publisher = publisher
        self.news_store = news_store
        self.event_store = event_store
        self.attempts = attempts
        self.delay = delay
        self.sleep = sleep
        self.clock = clock

    def run(self, since: datetime) -> RunReport:
        return run_attempts(
            lambda: self._attempt(since),
            attempts=self.attempts,
            delay=self.delay,
            retryable=lambda r: r.stage("publish") is None,
            sleep=self.sleep,
        )

    def _attempt(self, since: datetime) -> RunReport:
        report = RunReport(job="summary")
        try:
            news = self.news_store.find_all_until_date(since)
            events = self.event_store.find_all_until_date(since) if self.event_store else []
        except FinThreadError as exc:
            logger.error("[summary] loading stored items failed: %s", exc)
            report.add(StageOutcome("load", StageStatus.FAILED, error=exc))
            return report

        total = len(news) + len(events)
        if total < MIN_ITEMS:
            logger.info("[summary] only %d item(s) since %s; skipping", total, since)
            report.add(StageOutcome("load", StageStatus.EMPTY, total))
            return report
        report.add(StageOutcome("load", StageStatus.OK, total))

        headlines: List[Headline] = [e.to_headline() for e in events]
        headlines.extend(n.to_headline() for n in news)
        try:
            summarised = self.composer.summarise(headlines, HEADLINES_LIMIT, MAX_TOKENS)
        except FinThreadError as exc:
            logger.error("[summary] composing summary failed: %s", exc)
            report.add(StageOutcome("summarise", StageStatus.FAILED, error=exc))
            return report

        message = format_summary(summarised, since, now=self.clock())
        if not message:
            report.add(StageOutcome("summarise", StageStatus.EMPTY))
            return report
        report.add(StageOutcome("summarise", StageStatus.OK, len(summarised)))

        try:
            self.publisher.publish(message)
        except FinThreadError as exc:
            logger.error("[summary] publishing failed: %s", exc)
            report.add(StageOutcome("publish", StageStatus.FAILED, error=exc))
            return report
        report.add(StageOutcome("publish", StageStatus.OK, 1))
        logger.info("[summary] published summary of %d headline(s)", len(summarised))
        return report
