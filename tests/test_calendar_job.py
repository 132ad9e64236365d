from datetime import datetime, timedelta, timezone

from finthread.models import CalendarEvent, EventRecord
from finthread.models.event import IMPACT_HIGH, IMPACT_HOLIDAY, IMPACT_MEDIUM
from finthread.output.pipeline_reporter import StageStatus
from finthread.pipeline.calendar_job import (
    CalendarJob,
    apply_actuals,
    event_to_record,
    group_by_country,
    week_window,
)

from fakes import FakeCalendarSource, FakePublisher

US = "United States"
DE = "Germany"


def _event(title, when, *, country=US, currency="USD", impact=IMPACT_HIGH, actual="", event_time=None):
    return CalendarEvent(
        date_time=when,
        country=country,
        currency=currency,
        impact=impact,
        title=title,
        event_time=event_time,
        actual=actual,
        forecast="2.9%",
        previous="2.8%",
    )


def test_event_time_after_date_wins():
    scheduled = datetime(2023, 4, 10, 12, tzinfo=timezone.utc)
    later = _event("CPI", scheduled, event_time=scheduled + timedelta(hours=1))
    earlier = _event("CPI", scheduled, event_time=scheduled - timedelta(hours=1))

    rec = event_to_record(later, channel_id="@c", provider_name="ecal")
    assert rec.date_time == scheduled + timedelta(hours=1)
    assert rec.channel_id == "@c"
    assert rec.provider_name == "ecal"
    assert rec.forecast == "2.9%"
    assert event_to_record(earlier, channel_id="@c", provider_name="ecal").date_time == scheduled


def test_week_window_spans_monday_to_sunday():
    start, end = week_window(datetime(2023, 4, 12, 9, 30, tzinfo=timezone.utc))
    assert start == datetime(2023, 4, 10, tzinfo=timezone.utc)
    assert end == datetime(2023, 4, 16, 23, 59, 59, tzinfo=timezone.utc)


def test_apply_actuals_matches_country_currency_title():
    when = datetime(2023, 4, 10, 12, tzinfo=timezone.utc)
    stored = [
        event_to_record(_event("CPI", when), channel_id="@c", provider_name="ecal"),
        event_to_record(_event("CPI", when, country=DE, currency="EUR"), channel_id="@c", provider_name="ecal"),
    ]
    fresh = [_event("CPI", when, actual="3.1%"), _event("CPI", when, country=DE, currency="EUR")]

    updated = apply_actuals(stored, fresh)

    assert [r.country for r in updated] == [US]
    assert updated[0].actual == "3.1%"


def test_group_by_country_keeps_order():
    when = datetime(2023, 4, 10, tzinfo=timezone.utc)
    recs = [
        EventRecord(date_time=when, country=c, currency="X", impact=IMPACT_HIGH, title=t)
        for c, t in [(US, "a"), (DE, "b"), (US, "c")]
    ]
    groups = group_by_country(recs)
    assert list(groups) == [US, DE]
    assert [r.title for r in groups[US]] == ["a", "c"]


def _clock():
    return datetime(2023, 4, 10, 6, tzinfo=timezone.utc)


def test_weekly_plan_is_published_and_stored(store):
    events = [
        _event("Holiday", datetime(2023, 4, 10, 0, tzinfo=timezone.utc), impact=IMPACT_HOLIDAY),
        _event("CPI", datetime(2023, 4, 11, 12, tzinfo=timezone.utc)),
    ]
    publisher = FakePublisher()
    job = CalendarJob(FakeCalendarSource(events), publisher, store.events, clock=_clock)

    report = job.run_weekly()

    assert not report.failed
    assert len(publisher.messages) == 1
    assert publisher.messages[0].startswith("📅 Economic calendar for the upcoming week")
    assert report.stage("save").count == 2


def test_weekly_plan_retries_fetch_failures(store):
    sleeps = []
    source = FakeCalendarSource([_event("CPI", datetime(2023, 4, 11, 12, tzinfo=timezone.utc))], failures=2)
    publisher = FakePublisher()
    job = CalendarJob(source, publisher, store.events, delay=600, sleep=sleeps.append, clock=_clock)

    report = job.run_weekly()

    assert not report.failed
    assert source.calls == 3
    assert sleeps == [600, 600]
    assert len(publisher.messages) == 1


def test_weekly_plan_publish_failure_is_final(store):
    sleeps = []
    source = FakeCalendarSource([_event("CPI", datetime(2023, 4, 11, 12, tzinfo=timezone.utc))])
    job = CalendarJob(source, FakePublisher(fail_at=1), store.events, sleep=sleeps.append, clock=_clock)

    report = job.run_weekly()

    assert report.failed
    assert source.calls == 1
    assert sleeps == []


def test_weekly_plan_gives_up_after_attempts(store):
    sleeps = []
    source = FakeCalendarSource(failures=10)
    job = CalendarJob(source, FakePublisher(), store.events, attempts=3, sleep=sleeps.append, clock=_clock)

    report = job.run_weekly()

    assert report.failed
    assert source.calls == 3
    assert len(sleeps) == 2


def _stored_event(title, *, country=US, currency="USD", impact=IMPACT_HIGH):
    soon = datetime.now(timezone.utc) + timedelta(minutes=1)
    return EventRecord(
        date_time=soon,
        country=country,
        currency=currency,
        impact=impact,
        title=title,
        forecast="2.9%",
        previous="2.8%",
    )


def test_updates_publish_one_message_per_country(store):
    store.events.create(
        [
            _stored_event("CPI"),
            _stored_event("GDP", impact=IMPACT_MEDIUM),
            _stored_event("Ifo", country=DE, currency="EUR"),
            _stored_event("Not released"),
        ]
    )
    now = datetime.now(timezone.utc)
    fresh = [
        _event("CPI", now, actual="3.1%"),
        _event("GDP", now, actual="2.0%"),
        _event("Ifo", now, country=DE, currency="EUR", actual="88.1"),
        _event("Not released", now),
    ]
    publisher = FakePublisher()

    report = CalendarJob(FakeCalendarSource(fresh), publisher, store.events).run_updates()

    assert report.stage("update").count == 3
    assert report.stage("publish").count == 2
    assert publisher.messages[0].startswith("🇺🇸 #usa\n🔥 CPI: *3.1%*")
    assert "⚠️ GDP: *2.0%*" in publisher.messages[0]
    assert publisher.messages[1].startswith("🇩🇪 #germany\n")
    assert [e.title for e in store.events.find_recent_events_without_value()] == ["Not released"]


def test_updates_without_released_values(store):
    store.events.create([_stored_event("CPI")])
    publisher = FakePublisher()
    report = CalendarJob(FakeCalendarSource([_event("CPI", datetime.now(timezone.utc))]), publisher, store.events).run_updates()

    assert report.stage("fetch").status is StageStatus.EMPTY
    assert publisher.messages == []


def test_updates_skip_when_nothing_is_pending(store):
    source = FakeCalendarSource()
    report = CalendarJob(source, FakePublisher(), store.events).run_updates()

    assert report.stage("load").status is StageStatus.EMPTY
    assert source.calls == 0
