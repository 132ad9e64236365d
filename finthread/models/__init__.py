"""Typed models used across the application."""

from .source import Source
from .news import News, NewsList, fingerprint, new_news
from .composed import ComposedNews, Headline, SummarisedHeadline
from .record import ComposedMeta, EventRecord, MetaKey, NewsRecord
from .event import CalendarEvent

__all__ = [
    "Source",
    "News",
    "NewsList",
    "fingerprint",
    "new_news",
    "ComposedNews",
    "Headline",
    "SummarisedHeadline",
    "ComposedMeta",
    "EventRecord",
    "MetaKey",
    "NewsRecord",
    "CalendarEvent",
]
