from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, List, Optional

from ..processors.normalize import clean_html_to_text, parse_date

MAX_DESCRIPTION_LENGTH = 1024


@dataclass(slots=True)
class News:
    """One fetched news item, before persistence."""

    id: str
    title: str
    description: str
    link: str
    date: datetime
    provider_name: str
    is_suspicious: bool = False
    is_filtered: bool = False

    def contains(self, keywords: Iterable[str], *, case_sensitive: bool = True) -> bool:
        haystack = f"{self.title} {self.description}"
        if not case_sensitive:
            haystack = haystack.lower()
        for keyword in keywords:
            needle = keyword if case_sensitive else keyword.lower()
            if needle and needle in haystack:
                return True
        return False


def fingerprint(link: str, title: str, description: str) -> str:
    """Content hash used as the news identity across feeds and runs."""
    payload = (link or "").strip() + title + description
    return hashlib.md5(payload.encode("utf-8")).hexdigest()


def new_news(
    title: str | None,
    description: str | None,
    link: str | None,
    date: str | int | None,
    provider_name: str,
) -> News:
    """Build a ``News`` from raw feed fields.

    Title and description are stripped of markup before the fingerprint is
    computed, so two copies of the same article that differ only in HTML
    produce the same ``id``. Raises ``DateParseError`` for unknown dates.
    """
    published = parse_date(date)

    clean_title = clean_html_to_text(title)
    clean_description = clean_html_to_text(description)[:MAX_DESCRIPTION_LENGTH]
    clean_link = (link or "").strip()

    return News(
        id=fingerprint(clean_link, clean_title, clean_description),
        title=clean_title,
        description=clean_description,
        link=clean_link,
        date=published,
        provider_name=provider_name,
    )


class NewsList(List[News]):
    """A batch of news with the list-level operations the pipeline needs."""

    def filter_by_keywords(self, keywords: Iterable[str]) -> "NewsList":
        """Keep items whose title or description contains any keyword (case-sensitive)."""
        kws = list(keywords)
        return NewsList(n for n in self if n.contains(kws))

    def flag_by_keywords(self, keywords: Iterable[str]) -> None:
        """Mark matching items as suspicious in place (case-insensitive)."""
        kws = list(keywords)
        for n in self:
            if n.contains(kws, case_sensitive=False):
                n.is_suspicious = True

    def map_ids(self) -> "NewsList":
        """Collapse the list to one entry per fingerprint, keeping the first seen."""
        seen: set[str] = set()
        unique = NewsList()
        for n in self:
            if n.id in seen:
                continue
            seen.add(n.id)
            unique.append(n)
        return unique

    def unique_links(self) -> "NewsList":
        """Collapse the list to one entry per link, keeping the first seen."""
        seen: set[str] = set()
        unique = NewsList()
        for n in self:
            if n.link in seen:
                continue
            seen.add(n.link)
            unique.append(n)
        return unique

    def find_by_id(self, news_id: str) -> Optional[News]:
        for n in self:
            if n.id == news_id:
                return n
        return None

    def remove_flagged(self) -> "NewsList":
        """Return the items that are neither filtered nor suspicious."""
        return NewsList(n for n in self if not n.is_filtered and not n.is_suspicious)

    def to_content_json(self) -> str:
        """Serialize id, title and description only, for prompting."""
        rows = [{"id": n.id, "title": n.title, "description": n.description} for n in self]
        return json.dumps(rows, ensure_ascii=False)

    @property
    def ids(self) -> List[str]:
        return [n.id for n in self]

    @property
    def links(self) -> List[str]:
        return [n.link for n in self]
