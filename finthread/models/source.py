from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class Source:
    """Configuration for one RSS feed."""

    name: str
    url: str
