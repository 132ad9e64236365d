"""Stage-based news job.

One ``Job.run()`` drives a batch through fetch, duplicate removal, AI
filtering, composition, persistence, the pre-publish filter, publishing and
the final record update. Each stage is a plain function of its input batch,
the immutable ``JobOptions`` and the collaborators; ``Job`` only sequences
them and records one ``StageOutcome`` per stage in a ``RunReport``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, FrozenSet, List, Mapping, Optional, Sequence, Tuple, Union

from ..errors import ConfigError, ContractViolationError, FinThreadError, PublishError, StoreError
from ..fetchers.journalist import Journalist
from ..models import ComposedMeta, ComposedNews, MetaKey, NewsList, NewsRecord
from ..output.formatter import TICKER_LINK_TEMPLATE, format_news_with_meta
from ..output.pipeline_reporter import RunReport, StageOutcome, StageStatus
from ..output.telegram import Publisher
from ..processors.composer import Composer
from ..storage.base import NewsStore
from ..utils.logging import get_logger

logger = get_logger("finthread.pipeline.job")

DEFAULT_RUN_TIMEOUT = 25.0

_FLAG_OPTIONS = frozenset(
    {
        "omit_suspicious",
        "omit_if_all_keys_empty",
        "omit_unlisted_stocks",
        "compose_text",
        "save_to_db",
        "remove_clones",
    }
)


@dataclass(frozen=True)
class JobOptions:
    """Read-only switches for one job. Build with ``JobOptionsBuilder``."""

    fetch_until: Union[datetime, timedelta, None] = None
    omit_suspicious: bool = False
    omit_empty_meta_keys: FrozenSet[MetaKey] = field(default_factory=frozenset)
    omit_if_all_keys_empty: bool = False
    omit_unlisted_stocks: bool = False
    compose_text: bool = False
    save_to_db: bool = False
    remove_clones: bool = False
    link_template: str = TICKER_LINK_TEMPLATE

    def cutoff(self, now: datetime) -> Optional[datetime]:
        """Resolve ``fetch_until``; a ``timedelta`` is a look-back from ``now``."""
        if isinstance(self.fetch_until, timedelta):
            return now - self.fetch_until
        return self.fetch_until


class JobOptionsBuilder:
    """Fluent construction of ``JobOptions``.

    Example::

        opts = (
            JobOptionsBuilder()
            .fetch_until(timedelta(minutes=1))
            .omit_suspicious()
            .omit_empty_meta(MetaKey.TICKERS)
            .compose_text()
            .save_to_db()
            .remove_clones()
            .build()
        )
    """

    def __init__(self) -> None:
        self._values: Dict[str, object] = {}
        self._omit_keys: set[MetaKey] = set()

    def fetch_until(self, until: Union[datetime, timedelta]) -> "JobOptionsBuilder":
        self._values["fetch_until"] = until
        return self

    def omit_suspicious(self) -> "JobOptionsBuilder":
        self._values["omit_suspicious"] = True
        return self

    def omit_empty_meta(self, key: MetaKey) -> "JobOptionsBuilder":
        if not isinstance(key, MetaKey):
            raise TypeError(f"expected MetaKey, got {key!r}")
        self._omit_keys.add(key)
        return self

    def omit_if_all_keys_empty(self) -> "JobOptionsBuilder":
        self._values["omit_if_all_keys_empty"] = True
        return self

    def omit_unlisted_stocks(self) -> "JobOptionsBuilder":
        self._values["omit_unlisted_stocks"] = True
        return self

    def compose_text(self) -> "JobOptionsBuilder":
        self._values["compose_text"] = True
        return self

    def save_to_db(self) -> "JobOptionsBuilder":
        self._values["save_to_db"] = True
        return self

    def remove_clones(self) -> "JobOptionsBuilder":
        self._values["remove_clones"] = True
        return self

    def link_template(self, template: str) -> "JobOptionsBuilder":
        self._values["link_template"] = template
        return self

    def build(self) -> JobOptions:
        return JobOptions(omit_empty_meta_keys=frozenset(self._omit_keys), **self._values)

    @classmethod
    def from_mapping(cls, options: Mapping[str, object]) -> "JobOptionsBuilder":
        """Builder preloaded from a config mapping such as ``{"compose_text": true}``.

        ``omit_empty_meta`` takes a list of metadata key names.
        """
        builder = cls()
        for key, value in options.items():
            if key == "omit_empty_meta":
                names = value if isinstance(value, list) else [value]
                for name in names:
                    try:
                        builder.omit_empty_meta(MetaKey(str(name).lower()))
                    except ValueError as exc:
                        raise ConfigError(f"unknown metadata key {name!r}") from exc
            elif key == "link_template":
                builder.link_template(str(value))
            elif key in _FLAG_OPTIONS:
                if value is True:
                    getattr(builder, key)()
                elif value is not False:
                    raise ConfigError(f"option {key!r} must be true or false")
            else:
                raise ConfigError(f"unknown job option {key!r}")
        return builder


# ---------------- Stages -----------------


def remove_duplicates(news: NewsList, store: NewsStore) -> NewsList:
    """Drop items whose fingerprint or URL is already stored, keeping order."""
    by_hash = store.find_all_by_hashes(news.ids)
    by_url = store.find_all_by_urls(news.links)
    known_hashes = {r.hash for r in by_hash}
    known_urls = {r.url for r in by_url}
    return NewsList(n for n in news if n.id not in known_hashes and n.link not in known_urls)


def build_records(news: NewsList, composed: Sequence[ComposedNews], *, channel_id: str) -> List[NewsRecord]:
    """Map every fetched item to a record, attaching composer output by fingerprint."""
    if len(composed) > len(news):
        raise ContractViolationError(
            f"composer returned {len(composed)} items for a batch of {len(news)}"
        )

    by_id = {c.id: c for c in composed}
    records: List[NewsRecord] = []
    for n in news:
        rec = NewsRecord(
            hash=n.id,
            url=n.link,
            original_title=n.title,
            original_desc=n.description,
            original_date=n.date,
            provider_name=n.provider_name,
            channel_id=channel_id,
            is_suspicious=n.is_suspicious,
            is_filtered=n.is_filtered,
        )
        c = by_id.get(n.id)
        if c is not None:
            rec.composed_text = c.text
            rec.meta_data = ComposedMeta(tickers=c.tickers, markets=c.markets, hashtags=c.hashtags).to_json()
        records.append(rec)
    return records


def should_publish(record: NewsRecord, options: JobOptions, stocks: Optional[FrozenSet[str]]) -> bool:
    """Pre-publish gate for one record.

    Raises ``MetadataError`` when the stored metadata blob is malformed.
    """
    if record.is_suspicious and options.omit_suspicious:
        return False
    if record.is_filtered:
        return False
    # Items the composer chose not to rewrite were rejected by it
    if options.compose_text and not record.composed_text:
        return False

    meta = record.meta()
    for key in options.omit_empty_meta_keys:
        if not meta.values(key):
            return False
    if options.omit_unlisted_stocks and stocks is not None and meta.tickers:
        if any(t not in stocks for t in meta.tickers):
            return False
    if options.omit_if_all_keys_empty and meta.is_empty():
        return False
    return True


def prepublish_filter(
    records: Sequence[NewsRecord],
    options: JobOptions,
    stocks: Optional[FrozenSet[str]] = None,
) -> List[NewsRecord]:
    return [r for r in records if should_publish(r, options, stocks)]


def render_record(record: NewsRecord, options: JobOptions) -> str:
    if options.compose_text and record.composed_text:
        return format_news_with_meta(record.composed_text, record.meta(), link_template=options.link_template)
    return f"{record.original_title}\n{record.original_desc}"


def publish_records(
    records: Sequence[NewsRecord],
    publisher: Publisher,
    options: JobOptions,
    *,
    clock: Callable[[], datetime],
) -> Tuple[List[NewsRecord], Optional[FinThreadError]]:
    """Publish in order and stop at the first failure.

    Returns the records sent so far together with the error that stopped the
    batch, if any.
    """
    sent: List[NewsRecord] = []
    for rec in records:
        text = render_record(rec, options)
        try:
            pub_id = publisher.publish(text)
        except FinThreadError as exc:
            return sent, exc
        except Exception as exc:  # noqa: BLE001
            err = PublishError(f"publisher failed: {exc}")
            err.__cause__ = exc
            return sent, err
        rec.publication_id = pub_id
        rec.published_at = clock() if pub_id else None
        sent.append(rec)
    return sent, None


# ---------------- Orchestrator -----------------


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Job:
    """Configured news pipeline; holds no state between runs."""

    def __init__(
        self,
        journalist: Journalist,
        *,
        publisher: Publisher,
        composer: Optional[Composer] = None,
        store: Optional[NewsStore] = None,
        stocks: Optional[FrozenSet[str]] = None,
        options: Optional[JobOptions] = None,
        run_timeout: float = DEFAULT_RUN_TIMEOUT,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.journalist = journalist
        self.publisher = publisher
        self.composer = composer
        self.store = store
        self.stocks = stocks
        self.options = options or JobOptions()
        self.run_timeout = run_timeout
        self.clock = clock
        if self.options.save_to_db and store is None:
            raise ValueError("save_to_db requires a store")
        if self.options.compose_text and composer is None:
            raise ValueError("compose_text requires a composer")

    @property
    def name(self) -> str:
        return self.journalist.name

    def _record(self, report: RunReport, stage: str, status: StageStatus, count: int = 0, error: Optional[BaseException] = None) -> StageOutcome:
        outcome = report.add(StageOutcome(stage, status, count, error))
        if status is StageStatus.FAILED:
            logger.warning("[%s][%s] failed: %s", self.name, stage, error)
        else:
            logger.info("[%s][%s] %s count=%d", self.name, stage, status.value, count)
        return outcome

    def run(self, until: Optional[datetime] = None) -> RunReport:
        """Execute all stages once. Never raises; inspect the returned report."""
        report = RunReport(job=self.name)
        try:
            self._run(report, until)
        except Exception as exc:  # noqa: BLE001
            logger.exception("[%s] unexpected error", self.name)
            report.add(StageOutcome("run", StageStatus.FAILED, error=exc))
        return report

    def _run(self, report: RunReport, until: Optional[datetime]) -> None:
        opts = self.options
        cutoff = until or opts.cutoff(self.clock())

        # 1. fetch
        news, fetch_err = self.journalist.get_latest_news(cutoff, timeout=self.run_timeout)
        if fetch_err is not None:
            report.warn(fetch_err)
        if not news:
            if fetch_err is not None:
                self._record(report, "fetch", StageStatus.FAILED, error=fetch_err)
            else:
                self._record(report, "fetch", StageStatus.EMPTY)
            return
        news = news.map_ids().unique_links()
        self._record(report, "fetch", StageStatus.OK, len(news))

        # 2. remove duplicates
        if opts.remove_clones and opts.save_to_db:
            try:
                news = remove_duplicates(news, self.store)
            except FinThreadError as exc:
                self._record(report, "remove_duplicates", StageStatus.FAILED, error=exc)
                return
            if not news:
                self._record(report, "remove_duplicates", StageStatus.EMPTY)
                return
            self._record(report, "remove_duplicates", StageStatus.OK, len(news))
        else:
            self._record(report, "remove_duplicates", StageStatus.SKIPPED, len(news))

        # 3. AI relevance filter
        if self.composer is not None:
            try:
                news = self.composer.filter(news)
            except FinThreadError as exc:
                self._record(report, "filter", StageStatus.FAILED, error=exc)
                return
            if not news:
                self._record(report, "filter", StageStatus.EMPTY)
                return
            self._record(report, "filter", StageStatus.OK, len(news.remove_flagged()))
        else:
            self._record(report, "filter", StageStatus.SKIPPED, len(news))

        # 4. compose
        composed: List[ComposedNews] = []
        if opts.compose_text and self.composer is not None:
            try:
                composed = self.composer.compose(news)
            except FinThreadError as exc:
                self._record(report, "compose", StageStatus.FAILED, error=exc)
                return
            if not composed:
                self._record(report, "compose", StageStatus.EMPTY)
                return
            self._record(report, "compose", StageStatus.OK, len(composed))
        else:
            self._record(report, "compose", StageStatus.SKIPPED, len(news))

        # 5. save
        try:
            records = build_records(news, composed, channel_id=self.publisher.channel_id)
            if opts.save_to_db:
                self.store.create(records)
        except FinThreadError as exc:
            self._record(report, "save", StageStatus.FAILED, error=exc)
            return
        self._record(report, "save", StageStatus.OK if opts.save_to_db else StageStatus.SKIPPED, len(records))

        # 6. pre-publish filter
        try:
            to_publish = prepublish_filter(records, opts, self.stocks if opts.omit_unlisted_stocks else None)
        except FinThreadError as exc:
            self._record(report, "prepublish_filter", StageStatus.FAILED, error=exc)
            return
        if not to_publish:
            self._record(report, "prepublish_filter", StageStatus.EMPTY)
            return
        self._record(report, "prepublish_filter", StageStatus.OK, len(to_publish))

        # 7. publish
        sent, publish_err = publish_records(to_publish, self.publisher, opts, clock=self.clock)
        if publish_err is not None:
            self._record(report, "publish", StageStatus.FAILED, len(sent), publish_err)
        else:
            self._record(report, "publish", StageStatus.OK, len(sent))

        # 8. update
        if opts.save_to_db:
            self._update(report, [r for r in sent if r.is_published])
        else:
            self._record(report, "update", StageStatus.SKIPPED)

    def _update(self, report: RunReport, records: Sequence[NewsRecord]) -> None:
        if not records:
            self._record(report, "update", StageStatus.EMPTY)
            return
        updated = 0
        first_err: Optional[StoreError] = None
        for rec in records:
            try:
                self.store.update(rec)
                updated += 1
            except StoreError as exc:
                # Messages are already live; keep writing the rest
                logger.warning("[%s][update] %s: %s", self.name, rec.hash, exc)
                first_err = first_err or exc
        if first_err is not None:
            self._record(report, "update", StageStatus.FAILED, updated, first_err)
        else:
            self._record(report, "update", StageStatus.OK, updated)
