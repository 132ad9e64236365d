from __future__ import annotations

from dataclasses import dataclass, field
from typing import List


@dataclass(slots=True)
class ComposedNews:
    """Composer output for one news item, keyed by the item's fingerprint."""

    id: str
    text: str
    tickers: List[str] = field(default_factory=list)
    markets: List[str] = field(default_factory=list)
    hashtags: List[str] = field(default_factory=list)


@dataclass(slots=True)
class Headline:
    """Input unit for summarisation."""

    id: str
    text: str
    link: str = ""


@dataclass(slots=True)
class SummarisedHeadline:
    """One line of a summary.

    ``verb`` is the word the summary should link to ``link``.
    """

    id: str
    summary: str
    verb: str = ""
    link: str = ""
