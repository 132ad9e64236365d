from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Sequence

from ..models import EventRecord, NewsRecord


class NewsStore(ABC):
    """Persistent news records, unique by ``hash`` and by ``url``."""

    @abstractmethod
    def create(self, records: Sequence[NewsRecord]) -> None:
        """Insert all records or none of them."""

    @abstractmethod
    def update(self, record: NewsRecord) -> None:
        """Overwrite the stored record with the same ``hash``."""

    @abstractmethod
    def find_all_by_hashes(self, hashes: Sequence[str]) -> List[NewsRecord]: ...

    @abstractmethod
    def find_all_by_urls(self, urls: Sequence[str]) -> List[NewsRecord]: ...

    @abstractmethod
    def find_all_until_date(self, cutoff: datetime) -> List[NewsRecord]:
        """Records published at or after ``cutoff``."""


class EventStore(ABC):
    """Persistent economic calendar events."""

    @abstractmethod
    def create(self, records: Sequence[EventRecord]) -> None: ...

    @abstractmethod
    def update(self, record: EventRecord) -> None:
        """Overwrite the stored event with the same ``id``."""

    @abstractmethod
    def find_all_until_date(self, cutoff: datetime) -> List[EventRecord]:
        """Events between ``cutoff`` and now that already have an actual value."""

    @abstractmethod
    def find_recent_events_without_value(self) -> List[EventRecord]:
        """Today's and upcoming events still waiting for their actual value."""
