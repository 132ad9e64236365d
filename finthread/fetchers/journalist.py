from __future__ import annotations

import concurrent.futures as futures
from datetime import datetime
from typing import Iterable, List, Optional, Sequence, Tuple

from ..errors import JournalistError, ProviderError
from ..models import NewsList
from ..utils.logging import get_logger
from .rss import NewsProvider

logger = get_logger("finthread.fetchers.journalist")

# Headroom kept between the run budget and each provider's own timeout.
_TIMEOUT_MARGIN = 1.0


class Journalist:
    """Fetch from several providers at once and merge what arrives.

    One failing or slow provider never blocks the others: its error is
    collected and returned next to the merged result.
    """

    def __init__(
        self,
        name: str,
        providers: Sequence[NewsProvider],
        *,
        filter_keywords: Iterable[str] = (),
        flag_keywords: Iterable[str] = (),
        limit: Optional[int] = None,
        provider_timeout: float = 10.0,
        max_workers: int = 16,
    ) -> None:
        self.name = name
        self.providers = list(providers)
        self.filter_keywords = list(filter_keywords)
        self.flag_keywords = list(flag_keywords)
        self.limit = limit
        self.provider_timeout = provider_timeout
        self.max_workers = max_workers

    def _provider_budget(self, timeout: Optional[float]) -> float:
        if timeout is None:
            return self.provider_timeout
        return max(0.1, min(self.provider_timeout, timeout - _TIMEOUT_MARGIN))

    def get_latest_news(
        self,
        until: Optional[datetime],
        *,
        timeout: Optional[float] = None,
    ) -> Tuple[NewsList, Optional[JournalistError]]:
        """Fetch all providers concurrently.

        ``timeout`` is the caller's whole budget in seconds; each provider
        gets a shorter one. Returns the merged items (completion order) and,
        if any provider failed or timed out, a ``JournalistError`` listing
        each failure. Partial results are always returned.
        """
        if not self.providers:
            return NewsList(), None

        budget = self._provider_budget(timeout)
        workers = min(self.max_workers, len(self.providers))
        logger.debug(
            "Starting concurrent fetch for %s: providers=%d workers=%d budget=%.1fs",
            self.name,
            len(self.providers),
            workers,
            budget,
        )

        merged = NewsList()
        errors: List[ProviderError] = []
        executor = futures.ThreadPoolExecutor(max_workers=workers, thread_name_prefix=f"journalist-{self.name}")
        try:
            future_map = {executor.submit(p.fetch, until, timeout=budget): p for p in self.providers}
            done, pending = futures.wait(future_map, timeout=budget)

            for fut in pending:
                provider = future_map[fut]
                fut.cancel()
                errors.append(ProviderError(provider.name, f"timed out after {budget:.1f}s"))

            for fut in done:
                provider = future_map[fut]
                try:
                    items = fut.result()
                except ProviderError as exc:
                    errors.append(exc)
                    continue
                except Exception as exc:  # noqa: BLE001
                    errors.append(ProviderError(provider.name, repr(exc)))
                    continue

                if self.limit is not None and self.limit >= 0:
                    items = items[: self.limit]
                merged.extend(items)
        finally:
            # Abandoned fetches finish on their own once the HTTP timeout fires
            executor.shutdown(wait=False, cancel_futures=True)

        if self.filter_keywords:
            merged = merged.filter_by_keywords(self.filter_keywords)
        if self.flag_keywords:
            merged.flag_by_keywords(self.flag_keywords)

        for err in errors:
            logger.warning("[%s] %s", self.name, err)
        logger.info(
            "Concurrent fetch complete for %s: total=%d failed_providers=%d",
            self.name,
            len(merged),
            len(errors),
        )
        return merged, (JournalistError(errors) if errors else None)
