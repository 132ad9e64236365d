from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import Iterable, List, Optional, Sequence

from ..models import ComposedMeta, EventRecord, SummarisedHeadline
from ..models.event import COUNTRY_EMOJI, COUNTRY_HASHTAG, IMPACT_HIGH, IMPACT_MEDIUM, CalendarEvent
from ..processors.normalize import str_value_to_float

TICKER_LINK_TEMPLATE = "https://short-fork.extr.app/en/{ticker}?utm_source=finthread"


def format_news_with_meta(
    text: str,
    meta: Optional[ComposedMeta],
    *,
    link_template: str = TICKER_LINK_TEMPLATE,
) -> str:
    """Turn ticker mentions in ``text`` into Markdown links.

    Only the first occurrence of each ticker is linked, in metadata order.
    """
    if meta is None:
        return text
    for ticker in meta.tickers:
        if not ticker:
            continue
        link = link_template.format(ticker=ticker)
        text = text.replace(ticker, f"[{ticker}]({link})", 1)
    return text


def format_weekly_events(events: Sequence[CalendarEvent]) -> str:
    """Render a week of events grouped by day; events must be sorted by date."""
    if not events:
        return ""

    lines: List[str] = ["📅 Economic calendar for the upcoming week\n\n"]
    current_day = ""
    for e in events:
        day = e.date_time.strftime("%A, %B %d")
        if day != current_day:
            current_day = day
            lines.append(f"*{day}*\n")

        flag = COUNTRY_EMOJI.get(e.country, "")
        if e.is_holiday:
            lines.append(f"{flag} {e.title}\n")
            continue

        line = f"{flag} {e.date_time.strftime('%H:%M')} {e.title}"
        if e.forecast:
            line += f", forecast: {e.forecast}"
        if e.previous:
            line += f", last: {e.previous}"
        lines.append(line + "\n")

    lines.append("*All times are in UTC*\n#calendar #economy")
    return "".join(lines)


def _percent_change(actual: str, previous: str) -> Optional[float]:
    if not previous or "%" in previous:
        return None
    prev = str_value_to_float(previous)
    if prev == 0:
        return None
    p = (str_value_to_float(actual) / prev - 1) * 100
    return p if math.isfinite(p) else None


def _format_event_line(event: EventRecord) -> str:
    line = ""
    if event.forecast or event.previous:
        if event.impact == IMPACT_HIGH:
            line += "🔥 "
        elif event.impact == IMPACT_MEDIUM:
            line += "⚠️ "

    line += f"{event.title}: *{event.actual}*"

    p = _percent_change(event.actual, event.previous)
    if p is not None:
        line += f" (+{p:.2f}%)" if p > 0 else f" ({p:.2f}%)"

    if event.forecast:
        line += f", forecast: {event.forecast}"
    if event.previous:
        line += f", last: {event.previous}"
    return line


def format_events_update(country: str, events: Iterable[EventRecord]) -> str:
    """One message per country: flag and hashtag header, then one line per event."""
    rows = [_format_event_line(e) for e in events]
    if not rows:
        return ""
    header = f"{COUNTRY_EMOJI.get(country, '')} #{COUNTRY_HASHTAG.get(country, country.lower().replace(' ', ''))}"
    return header + "\n" + "\n".join(rows)


def format_summary(
    headlines: Sequence[SummarisedHeadline],
    since: datetime,
    *,
    now: Optional[datetime] = None,
) -> str:
    if not headlines:
        return ""

    now = now or datetime.now(timezone.utc)
    hours = int((now - since).total_seconds() // 3600)

    message = f"📓 #summary\nWhat happened in the last {hours} hours:\n"
    for h in headlines:
        line = f"- {h.summary}\n"
        if h.link and h.verb:
            line = line.replace(h.verb, f"[{h.verb}]({h.link})", 1)
        message += line
    return message
