from __future__ import annotations

import json
from abc import ABC, abstractmethod
from dataclasses import asdict
from datetime import datetime, timezone
from typing import List, Sequence

import requests

from ..errors import ComposerError
from ..models.composed import ComposedNews, Headline, SummarisedHeadline
from ..models.news import NewsList
from ..utils.logging import get_logger
from .ai.base import AIClient
from .ai.parsing import parse_json_array
from .ai.retry import with_retries
from .normalize import replace_unicode_symbols

logger = get_logger("finthread.processors.composer")

MAX_WORDS_PER_SENTENCE = 10

HASHTAGS = (
    "inflation",
    "interestrates",
    "crisis",
    "unemployment",
    "bankruptcy",
    "dividends",
    "IPO",
    "debt",
    "war",
    "buybacks",
    "fed",
    "AI",
    "crypto",
    "bitcoin",
)

COMPOSE_PROMPT = (
    'You will be answering only in JSON array format: [{"id":"", "text":"", "tickers":[], "markets":[], "hashtags":[]}]\n'
    "Remove from the array blank, spam, purposeless, clickbait, tabloid, advertising, unspecified, "
    "anonymous or non-financial news.\n"
    "The most important topics right now are inflation, interest rates, war, elections, crisis, "
    "unemployment index and regulations.\n"
    "If none of the news are important, return an empty array [].\n"
    "For each remaining item fill some (or none) of the tickers, markets and hashtags arrays.\n"
    "If the item mentions companies, put their stock symbols into 'tickers'.\n"
    "If the item is about market events, put index tickers (like SPY, QQQ or RUT) into 'markets'.\n"
    f"Choose 0-3 'hashtags' only from this list: {', '.join(HASHTAGS)}.\n"
    "It is fine to leave tickers, markets or hashtags empty.\n"
    "Finally write an informative, original 'text' from the title and description, "
    "easy to read, 1-2 sentences long.\n"
)

FILTER_PROMPT = (
    "You will receive a JSON array of news with IDs.\n"
    "Remove blank, spam, purposeless, clickbait, tabloid, advertising, unspecified, anonymous "
    "or non-financial news.\n"
    'Return only the news worth publishing, as a JSON array in the same format: [{"id":"", "title":"", "description":""}]\n'
    "If none are worth publishing, return an empty array [].\n"
)


def summarise_prompt(headlines_limit: int) -> str:
    return (
        "You will receive a JSON array of news with IDs.\n"
        f"Create a short ({MAX_WORDS_PER_SENTENCE} words max) summary for each of the {headlines_limit} most "
        "important financial, economic and stock market news that happened since the start of the day.\n"
        "Find the main verb in each summary and put it into the result.\n"
        'Respond in JSON array format: [{"summary":"", "verb":"", "id":"", "link":""}]\n'
    )


class Composer(ABC):
    """Generative rewriting, tagging and relevance filtering of news."""

    @abstractmethod
    def filter(self, news: NewsList) -> NewsList:
        """Return ``news`` with ``is_filtered`` set on rejected items."""

    @abstractmethod
    def compose(self, news: NewsList) -> List[ComposedNews]:
        """Rewrite the batch and extract tickers, markets and hashtags per item."""

    @abstractmethod
    def summarise(self, headlines: Sequence[Headline], limit: int, max_tokens: int) -> List[SummarisedHeadline]:
        """Pick up to ``limit`` headlines and summarise each in one short sentence."""


def _str_list(value: object) -> List[str]:
    if not isinstance(value, list):
        return []
    return [str(v) for v in value if v]


class LLMComposer(Composer):
    """Composer backed by a text-generation ``AIClient``.

    Items already marked suspicious or filtered are never sent to the model.
    ``compose`` only considers items published today (UTC).
    """

    def __init__(self, client: AIClient, *, today_only: bool = True) -> None:
        self.client = client
        self.today_only = today_only

    def _ask(self, prompt: str, *, temperature: float, max_tokens: int) -> list[dict]:
        try:
            raw = with_retries(lambda: self.client.generate(prompt, temperature=temperature, max_tokens=max_tokens))
        except requests.RequestException as exc:
            raise ComposerError(f"AI backend request failed: {exc}") from exc
        return parse_json_array(raw)

    def filter(self, news: NewsList) -> NewsList:
        if not news:
            return NewsList()

        candidates = news.remove_flagged()
        if not candidates:
            return news

        rows = self._ask(f"{FILTER_PROMPT}\n{candidates.to_content_json()}", temperature=0.9, max_tokens=2048)
        chosen = {str(row.get("id")) for row in rows}
        candidate_ids = set(candidates.ids)

        # Only items the model actually saw can be rejected by it
        for n in news:
            if n.id in candidate_ids and n.id not in chosen:
                n.is_filtered = True

        logger.info("AI filter kept %d of %d candidates", len(candidate_ids & chosen), len(candidate_ids))
        return news

    def compose(self, news: NewsList) -> List[ComposedNews]:
        batch = news
        if self.today_only:
            today = datetime.now(timezone.utc).date()
            batch = NewsList(n for n in news if n.date.astimezone(timezone.utc).date() == today)
        batch = batch.remove_flagged()
        if not batch:
            return []

        rows = self._ask(f"{COMPOSE_PROMPT}\n{batch.to_content_json()}", temperature=1.0, max_tokens=2048)
        composed: List[ComposedNews] = []
        for row in rows:
            news_id = str(row.get("id") or "")
            if not news_id:
                continue
            composed.append(
                ComposedNews(
                    id=news_id,
                    text=str(row.get("text") or "").strip(),
                    tickers=[replace_unicode_symbols(t) for t in _str_list(row.get("tickers"))],
                    markets=_str_list(row.get("markets")),
                    hashtags=_str_list(row.get("hashtags")),
                )
            )
        logger.info("Composed %d of %d news", len(composed), len(batch))
        return composed

    def summarise(self, headlines: Sequence[Headline], limit: int, max_tokens: int) -> List[SummarisedHeadline]:
        if not headlines:
            return []
        if max_tokens <= 0:
            raise ComposerError("max_tokens must be positive")
        if limit <= 0:
            raise ComposerError("limit must be positive")

        payload = json.dumps([asdict(h) for h in headlines], ensure_ascii=False)
        rows = self._ask(f"{summarise_prompt(limit)}\n{payload}", temperature=1.0, max_tokens=max_tokens)
        # Links always come from the source headlines
        links = {h.id: h.link for h in headlines}
        return [
            SummarisedHeadline(
                id=str(row.get("id") or ""),
                summary=str(row.get("summary") or "").strip(),
                verb=str(row.get("verb") or ""),
                link=links.get(str(row.get("id") or "")) or str(row.get("link") or ""),
            )
            for row in rows
            if row.get("summary")
        ]
