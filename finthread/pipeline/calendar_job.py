from __future__ import annotations

import time
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Sequence

from ..errors import FinThreadError
from ..fetchers.calendar import CalendarSource
from ..models import CalendarEvent, EventRecord
from ..output.formatter import format_events_update, format_weekly_events
from ..output.pipeline_reporter import RunReport, StageOutcome, StageStatus
from ..output.telegram import Publisher
from ..storage.base import EventStore
from ..utils.logging import get_logger
from .retry import run_attempts

logger = get_logger("finthread.pipeline.calendar")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def week_window(now: datetime) -> tuple[datetime, datetime]:
    """Monday 00:00 to Sunday 23:59:59 of the week containing ``now``."""
    start = now.replace(hour=0, minute=0, second=0, microsecond=0) - timedelta(days=now.weekday())
    return start, start + timedelta(days=6, hours=23, minutes=59, seconds=59)


def day_window(now: datetime) -> tuple[datetime, datetime]:
    start = now.replace(hour=0, minute=0, second=0, microsecond=0)
    return start, start + timedelta(hours=23, minutes=59, seconds=59)


def event_to_record(event: CalendarEvent, *, channel_id: str, provider_name: str) -> EventRecord:
    """Store one date per event: the release time when it is later than the scheduled date."""
    dt = event.date_time
    if event.event_time is not None and event.event_time > event.date_time:
        dt = event.event_time
    return EventRecord(
        date_time=dt,
        country=event.country,
        currency=event.currency,
        impact=event.impact,
        title=event.title,
        channel_id=channel_id,
        provider_name=provider_name,
        forecast=event.forecast,
        previous=event.previous,
    )


def apply_actuals(stored: Sequence[EventRecord], fresh: Sequence[CalendarEvent]) -> List[EventRecord]:
    """Copy newly released values onto the stored events they belong to."""
    updated: List[EventRecord] = []
    for rec in stored:
        for ev in fresh:
            if (rec.country, rec.currency, rec.title) != (ev.country, ev.currency, ev.title) or not ev.actual:
                continue
            rec.actual = ev.actual
            rec.forecast = ev.forecast
            rec.previous = ev.previous
            updated.append(rec)
            break
    return updated


def group_by_country(records: Sequence[EventRecord]) -> Dict[str, List[EventRecord]]:
    groups: Dict[str, List[EventRecord]] = {}
    for rec in records:
        groups.setdefault(rec.country, []).append(rec)
    return groups


class CalendarJob:
    """Weekly economic calendar digest and same-day actual value updates."""

    def __init__(
        self,
        source: CalendarSource,
        publisher: Publisher,
        store: EventStore,
        *,
        provider_name: str = "ecal",
        attempts: int = 5,
        delay: float = 600.0,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.source = source
        self.publisher = publisher
        self.store = store
        self.provider_name = provider_name
        self.attempts = attempts
        self.delay = delay
        self.sleep = sleep
        self.clock = clock

    # ---------------- Weekly plan -----------------
    def run_weekly(self) -> RunReport:
        """Publish the current week's plan once, then store every event.

        Failures before the publish call are retried; once the message went
        out nothing is retried.
        """
        return run_attempts(
            self._weekly_attempt,
            attempts=self.attempts,
            delay=self.delay,
            retryable=lambda r: r.stage("publish") is None,
            sleep=self.sleep,
        )

    def _weekly_attempt(self) -> RunReport:
        report = RunReport(job="calendar-weekly")
        start, end = week_window(self.clock())
        try:
            events = sorted(self.source.fetch(start, end), key=lambda e: e.date_time)
        except FinThreadError as exc:
            report.add(StageOutcome("fetch", StageStatus.FAILED, error=exc))
            return report
        if not events:
            report.add(StageOutcome("fetch", StageStatus.EMPTY))
            logger.info("[calendar] no events between %s and %s", start, end)
            return report
        report.add(StageOutcome("fetch", StageStatus.OK, len(events)))

        try:
            self.publisher.publish(format_weekly_events(events))
        except FinThreadError as exc:
            logger.warning("[calendar] publishing weekly plan failed: %s", exc)
            report.add(StageOutcome("publish", StageStatus.FAILED, error=exc))
            return report
        report.add(StageOutcome("publish", StageStatus.OK, 1))

        records = [
            event_to_record(e, channel_id=self.publisher.channel_id, provider_name=self.provider_name)
            for e in events
        ]
        try:
            self.store.create(records)
        except FinThreadError as exc:
            logger.warning("[calendar] saving events failed: %s", exc)
            report.add(StageOutcome("save", StageStatus.FAILED, error=exc))
            return report
        report.add(StageOutcome("save", StageStatus.OK, len(records)))
        logger.info("[calendar] weekly plan published with %d events", len(events))
        return report

    # ---------------- Updates -----------------
    def run_updates(self) -> RunReport:
        report = RunReport(job="calendar-updates")
        try:
            self._updates(report)
        except Exception as exc:  # noqa: BLE001
            logger.exception("[calendar-updates] unexpected error")
            report.add(StageOutcome("run", StageStatus.FAILED, error=exc))
        return report

    def _updates(self, report: RunReport) -> None:
        try:
            stored = self.store.find_recent_events_without_value()
        except FinThreadError as exc:
            report.add(StageOutcome("load", StageStatus.FAILED, error=exc))
            return
        if not stored:
            report.add(StageOutcome("load", StageStatus.EMPTY))
            return
        report.add(StageOutcome("load", StageStatus.OK, len(stored)))

        start, end = day_window(self.clock())
        try:
            fresh = self.source.fetch(start, end)
        except FinThreadError as exc:
            report.add(StageOutcome("fetch", StageStatus.FAILED, error=exc))
            return
        if not any(e.actual for e in fresh):
            report.add(StageOutcome("fetch", StageStatus.EMPTY, len(fresh)))
            return
        report.add(StageOutcome("fetch", StageStatus.OK, len(fresh)))

        updated = apply_actuals(stored, fresh)
        if not updated:
            report.add(StageOutcome("update", StageStatus.EMPTY))
            return
        for rec in updated:
            try:
                self.store.update(rec)
            except FinThreadError as exc:
                report.add(StageOutcome("update", StageStatus.FAILED, error=exc))
                return
        report.add(StageOutcome("update", StageStatus.OK, len(updated)))

        published = 0
        for country, group in group_by_country(updated).items():
            message = format_events_update(country, group)
            if not message:
                continue
            try:
                self.publisher.publish(message)
            except FinThreadError as exc:
                logger.warning("[calendar-updates] publishing %s failed: %s", country, exc)
                report.add(StageOutcome("publish", StageStatus.FAILED, published, exc))
                return
            published += 1
        report.add(StageOutcome("publish", StageStatus.OK, published))
        logger.info("[calendar-updates] published %d update(s) for %d event(s)", published, len(updated))
