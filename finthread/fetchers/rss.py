from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional

import feedparser
import requests

from ..errors import DateParseError, ProviderError
from ..models import NewsList, Source, new_news
from ..utils.logging import get_logger

logger = get_logger("finthread.fetchers.rss")


_DEFAULT_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) "
        "AppleWebKit/537.36 (KHTML, like Gecko) "
        "Chrome/127.0.0.0 Safari/537.36"
    )
}


class NewsProvider(ABC):
    """One external news feed."""

    name: str

    @abstractmethod
    def fetch(self, until: Optional[datetime], *, timeout: float) -> NewsList:
        """Return items published at or after ``until``, newest first.

        Raises ``ProviderError`` carrying the provider name on any failure.
        """


class RssProvider(NewsProvider):
    """RSS/Atom provider backed by ``requests`` and ``feedparser``.

    Feeds are assumed to list items newest first: reading stops at the first
    item older than the cutoff. An out-of-order feed may therefore deliver a
    few items too many or too few around the boundary.
    """

    def __init__(self, name: str, url: str, *, session: requests.Session | None = None) -> None:
        self.name = name
        self.url = url
        self._http = session or requests

    @classmethod
    def from_source(cls, source: Source) -> "RssProvider":
        return cls(source.name, source.url)

    def fetch(self, until: Optional[datetime], *, timeout: float = 10.0) -> NewsList:
        logger.debug("Fetching RSS from %s", self.url)
        try:
            resp = self._http.get(self.url, headers=_DEFAULT_HEADERS, timeout=timeout)
            if resp.status_code >= 400:
                logger.warning("RSS fetch failed (%s): %s", resp.status_code, self.url)
                resp.raise_for_status()
        except requests.RequestException as exc:
            raise ProviderError(self.name, str(exc)) from exc

        parsed = feedparser.parse(resp.content)
        entries = getattr(parsed, "entries", []) or []
        if getattr(parsed, "bozo", False):
            if not entries:
                raise ProviderError(self.name, f"unreadable feed: {getattr(parsed, 'bozo_exception', None)}")
            # feedparser sets bozo on feed errors but may still parse entries
            logger.debug("Feed 'bozo' flagged for %s: %s", self.url, getattr(parsed, "bozo_exception", None))

        items = NewsList()
        for entry in entries:
            raw_date = entry.get("published") or entry.get("updated")
            try:
                item = new_news(
                    entry.get("title"),
                    entry.get("summary") or entry.get("description"),
                    entry.get("link"),
                    raw_date,
                    self.name,
                )
            except DateParseError as exc:
                logger.warning("Skipping item from %s: %s", self.name, exc)
                continue

            if until is not None and item.date < until:
                break
            items.append(item)

        logger.info("Fetched %d RSS entries from %s", len(items), self.name)
        return items
