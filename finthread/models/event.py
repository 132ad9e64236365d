from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Optional

IMPACT_LOW = "Low"
IMPACT_MEDIUM = "Medium"
IMPACT_HIGH = "High"
IMPACT_HOLIDAY = "Holidays"
IMPACT_NONE = "None"

COUNTRY_EMOJI: Dict[str, str] = {
    "Australia": "🇦🇺",
    "Brazil": "🇧🇷",
    "Canada": "🇨🇦",
    "China": "🇨🇳",
    "European Union": "🇪🇺",
    "France": "🇫🇷",
    "Germany": "🇩🇪",
    "Hong Kong": "🇭🇰",
    "India": "🇮🇳",
    "Italy": "🇮🇹",
    "Japan": "🇯🇵",
    "Mexico": "🇲🇽",
    "New Zealand": "🇳🇿",
    "Norway": "🇳🇴",
    "Singapore": "🇸🇬",
    "South Africa": "🇿🇦",
    "South Korea": "🇰🇷",
    "Spain": "🇪🇸",
    "Sweden": "🇸🇪",
    "Switzerland": "🇨🇭",
    "United Kingdom": "🇬🇧",
    "United States": "🇺🇸",
}

COUNTRY_HASHTAG: Dict[str, str] = {
    "Australia": "australia",
    "Brazil": "brazil",
    "Canada": "canada",
    "China": "china",
    "European Union": "europe",
    "France": "france",
    "Germany": "germany",
    "Hong Kong": "hongkong",
    "India": "india",
    "Italy": "italy",
    "Japan": "japan",
    "Mexico": "mexico",
    "New Zealand": "newzealand",
    "Norway": "norway",
    "Singapore": "singapore",
    "South Africa": "southafrica",
    "South Korea": "southkorea",
    "Spain": "spain",
    "Sweden": "sweden",
    "Switzerland": "switzerland",
    "United Kingdom": "uk",
    "United States": "usa",
}


@dataclass(slots=True)
class CalendarEvent:
    """A scheduled economic event as delivered by a calendar source."""

    date_time: datetime
    country: str
    currency: str
    impact: str
    title: str
    event_time: Optional[datetime] = None  # release time, when known
    actual: str = ""
    forecast: str = ""
    previous: str = ""

    @property
    def is_holiday(self) -> bool:
        return self.impact == IMPACT_HOLIDAY
