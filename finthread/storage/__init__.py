"""Persistence boundary and the file-backed store."""

from .base import EventStore, NewsStore
from .json_store import JsonEventStore, JsonFileStore, JsonNewsStore

__all__ = ["EventStore", "NewsStore", "JsonEventStore", "JsonFileStore", "JsonNewsStore"]
