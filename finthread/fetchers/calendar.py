from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import List

from ..models import CalendarEvent


class CalendarSource(ABC):
    """External economic calendar."""

    @abstractmethod
    def fetch(self, start: datetime, end: datetime) -> List[CalendarEvent]:
        """Return events scheduled within ``[start, end]``."""
