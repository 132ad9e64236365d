from __future__ import annotations

import json
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from ..errors import MetadataError
from .composed import Headline


class MetaKey(Enum):
    """Keys of the metadata blob attached to a composed news item."""

    TICKERS = "tickers"
    MARKETS = "markets"
    HASHTAGS = "hashtags"


@dataclass(slots=True)
class ComposedMeta:
    tickers: List[str] = field(default_factory=list)
    markets: List[str] = field(default_factory=list)
    hashtags: List[str] = field(default_factory=list)

    def values(self, key: MetaKey) -> List[str]:
        match key:
            case MetaKey.TICKERS:
                return self.tickers
            case MetaKey.MARKETS:
                return self.markets
            case MetaKey.HASHTAGS:
                return self.hashtags
        raise TypeError(f"not a MetaKey: {key!r}")

    def is_empty(self) -> bool:
        return not (self.tickers or self.markets or self.hashtags)

    def to_json(self) -> str:
        return json.dumps(asdict(self), ensure_ascii=False)

    @classmethod
    def from_json(cls, blob: str) -> "ComposedMeta":
        """Decode a stored blob. Missing keys default to empty lists."""
        try:
            data = json.loads(blob)
        except (TypeError, ValueError) as exc:
            raise MetadataError(f"malformed metadata {blob!r}: {exc}") from exc
        if not isinstance(data, dict):
            raise MetadataError(f"metadata must be an object, got {blob!r}")

        values: Dict[str, List[str]] = {}
        for key in MetaKey:
            raw = data.get(key.value) or []
            if not isinstance(raw, list) or not all(isinstance(v, str) for v in raw):
                raise MetadataError(f"metadata '{key.value}' must be a list of strings: {blob!r}")
            values[key.value] = list(raw)
        return cls(**values)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _from_iso(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


@dataclass(slots=True)
class NewsRecord:
    """A persisted news row.

    A record without ``publication_id`` is a draft; it becomes published once
    the channel accepted the message.
    """

    hash: str
    url: str
    original_title: str
    original_desc: str
    original_date: datetime
    provider_name: str = ""
    channel_id: str = ""
    composed_text: str = ""
    meta_data: Optional[str] = None
    is_suspicious: bool = False
    is_filtered: bool = False
    publication_id: Optional[str] = None
    published_at: Optional[datetime] = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def is_published(self) -> bool:
        return bool(self.publication_id)

    def meta(self) -> ComposedMeta:
        """Decoded metadata; an absent blob reads as empty metadata."""
        if not self.meta_data:
            return ComposedMeta()
        return ComposedMeta.from_json(self.meta_data)

    def to_headline(self) -> Headline:
        return Headline(
            id=self.id,
            text=self.original_title,
            link=f"https://t.me/{self.channel_id.lstrip('@')}/{self.publication_id}",
        )

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        for key in ("original_date", "published_at", "created_at", "updated_at"):
            data[key] = _iso(data[key])
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "NewsRecord":
        row = dict(data)
        for key in ("original_date", "published_at", "created_at", "updated_at"):
            row[key] = _from_iso(row.get(key))
        return cls(**row)


@dataclass(slots=True)
class EventRecord:
    """A persisted economic calendar event."""

    date_time: datetime
    country: str
    currency: str
    impact: str
    title: str
    channel_id: str = ""
    provider_name: str = ""
    actual: str = ""
    forecast: str = ""
    previous: str = ""
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def to_headline(self) -> Headline:
        text = f"{self.title}: {self.actual}" if self.actual else self.title
        return Headline(id=self.id, text=text)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        for key in ("date_time", "created_at", "updated_at"):
            data[key] = _iso(data[key])
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EventRecord":
        row = dict(data)
        for key in ("date_time", "created_at", "updated_at"):
            row[key] = _from_iso(row.get(key))
        return cls(**row)
