"""Content fetching layer: RSS providers and the concurrent journalist."""

from .rss import NewsProvider, RssProvider
from .journalist import Journalist
from .stocks import load_stock_universe
from .calendar import CalendarSource

__all__ = ["NewsProvider", "RssProvider", "Journalist", "load_stock_universe", "CalendarSource"]
