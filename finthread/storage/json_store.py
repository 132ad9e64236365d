from __future__ import annotations

import json
import os
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Sequence

from ..errors import StoreError
from ..models import EventRecord, NewsRecord
from ..models.event import IMPACT_HOLIDAY, IMPACT_NONE
from ..utils.logging import get_logger
from .base import EventStore, NewsStore

logger = get_logger("finthread.storage")


def _now() -> datetime:
    return datetime.now(timezone.utc)


class JsonFileStore:
    """Single JSON document holding news and events.

    Exposes the two store contracts as ``.news`` and ``.events``. Every write
    rewrites the whole document through a temp file and ``os.replace``, so a
    failed batch leaves the previous state on disk.
    """

    def __init__(self, path: Path | str = "./.cache/finthread.json") -> None:
        self.path = Path(path)
        self._lock = threading.RLock()
        self._data: Dict[str, List[Dict[str, Any]]] = {"news": [], "events": []}
        self._load()
        self.news = JsonNewsStore(self)
        self.events = JsonEventStore(self)

    # ---------------- Persistence -----------------
    def _load(self) -> None:
        if not self.path.exists():
            self.path.parent.mkdir(parents=True, exist_ok=True)
            return
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            raise StoreError(f"cannot read store {self.path}: {exc}") from exc
        self._data = {"news": list(data.get("news", [])), "events": list(data.get("events", []))}
        logger.debug("Loaded store %s: news=%d events=%d", self.path, len(self._data["news"]), len(self._data["events"]))

    def _save(self, data: Dict[str, List[Dict[str, Any]]]) -> None:
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            tmp.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")
            os.replace(tmp, self.path)
        except OSError as exc:
            raise StoreError(f"cannot write store {self.path}: {exc}") from exc
        self._data = data

    def _rows(self, table: str) -> List[Dict[str, Any]]:
        return self._data[table]

    def _commit(self, table: str, rows: List[Dict[str, Any]]) -> None:
        data = dict(self._data)
        data[table] = rows
        self._save(data)


class JsonNewsStore(NewsStore):
    def __init__(self, backend: JsonFileStore) -> None:
        self._backend = backend

    def _all(self) -> List[NewsRecord]:
        return [NewsRecord.from_dict(row) for row in self._backend._rows("news")]

    def create(self, records: Sequence[NewsRecord]) -> None:
        if not records:
            return
        with self._backend._lock:
            rows = list(self._backend._rows("news"))
            hashes = {r["hash"] for r in rows}
            urls = {r["url"] for r in rows}
            now = _now()
            for rec in records:
                if rec.hash in hashes:
                    raise StoreError(f"duplicate news hash {rec.hash}")
                if rec.url in urls:
                    raise StoreError(f"duplicate news url {rec.url}")
                hashes.add(rec.hash)
                urls.add(rec.url)
                rec.created_at = rec.created_at or now
                rec.updated_at = now
                rows.append(rec.to_dict())
            self._backend._commit("news", rows)
        logger.info("Stored %d news records", len(records))

    def update(self, record: NewsRecord) -> None:
        with self._backend._lock:
            rows = list(self._backend._rows("news"))
            for i, row in enumerate(rows):
                if row["hash"] == record.hash:
                    record.updated_at = _now()
                    rows[i] = record.to_dict()
                    self._backend._commit("news", rows)
                    return
        raise StoreError(f"news record {record.hash} not found")

    def find_all_by_hashes(self, hashes: Sequence[str]) -> List[NewsRecord]:
        wanted = set(hashes)
        with self._backend._lock:
            return [r for r in self._all() if r.hash in wanted]

    def find_all_by_urls(self, urls: Sequence[str]) -> List[NewsRecord]:
        wanted = set(urls)
        with self._backend._lock:
            return [r for r in self._all() if r.url in wanted]

    def find_all_until_date(self, cutoff: datetime) -> List[NewsRecord]:
        with self._backend._lock:
            return [r for r in self._all() if r.published_at is not None and r.published_at >= cutoff]


class JsonEventStore(EventStore):
    def __init__(self, backend: JsonFileStore) -> None:
        self._backend = backend

    def _all(self) -> List[EventRecord]:
        return [EventRecord.from_dict(row) for row in self._backend._rows("events")]

    def create(self, records: Sequence[EventRecord]) -> None:
        if not records:
            return
        with self._backend._lock:
            rows = list(self._backend._rows("events"))
            now = _now()
            for rec in records:
                rec.created_at = rec.created_at or now
                rec.updated_at = now
                rows.append(rec.to_dict())
            self._backend._commit("events", rows)
        logger.info("Stored %d calendar events", len(records))

    def update(self, record: EventRecord) -> None:
        with self._backend._lock:
            rows = list(self._backend._rows("events"))
            for i, row in enumerate(rows):
                if row["id"] == record.id:
                    record.updated_at = _now()
                    rows[i] = record.to_dict()
                    self._backend._commit("events", rows)
                    return
        raise StoreError(f"event {record.id} not found")

    def find_all_until_date(self, cutoff: datetime) -> List[EventRecord]:
        now = _now()
        with self._backend._lock:
            return [e for e in self._all() if cutoff <= e.date_time <= now and e.actual]

    def find_recent_events_without_value(self) -> List[EventRecord]:
        start_of_day = _now().replace(hour=0, minute=0, second=0, microsecond=0)
        with self._backend._lock:
            return [
                e
                for e in self._all()
                if e.date_time >= start_of_day and e.impact not in (IMPACT_NONE, IMPACT_HOLIDAY) and not e.actual
            ]
