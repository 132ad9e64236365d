from datetime import datetime, timedelta, timezone

import pytest

from finthread.errors import ConfigError, ContractViolationError, JournalistError, MetadataError, ProviderError, PublishError
from finthread.models import ComposedNews, MetaKey, NewsList, NewsRecord
from finthread.output.pipeline_reporter import StageStatus
from finthread.pipeline.job import (
    Job,
    JobOptions,
    JobOptionsBuilder,
    build_records,
    prepublish_filter,
    should_publish,
)

from fakes import FakeComposer, FakeJournalist, FakePublisher, make_news

STOCKS = frozenset({"AAPL", "MSFT"})


def _options(**flags):
    builder = JobOptionsBuilder()
    for name in flags.pop("omit_empty_meta", ()):
        builder.omit_empty_meta(name)
    for name, enabled in flags.items():
        if enabled:
            getattr(builder, name)()
    return builder.build()


def test_empty_fetch_stops_the_run():
    publisher = FakePublisher()
    job = Job(FakeJournalist([]), publisher=publisher, composer=FakeComposer())

    report = job.run()

    assert [s.stage for s in report.stages] == ["fetch"]
    assert report.stage("fetch").status is StageStatus.EMPTY
    assert not report.failed
    assert publisher.messages == []


def test_failed_fetch_without_items_fails_the_run():
    err = JournalistError([ProviderError("wsj", "boom")])
    report = Job(FakeJournalist([], error=err), publisher=FakePublisher()).run()

    assert report.failed
    assert report.error is err


def test_partial_fetch_still_publishes():
    err = JournalistError([ProviderError("wsj", "boom")])
    publisher = FakePublisher()
    report = Job(FakeJournalist([make_news("Fed holds rates", "No change")], error=err), publisher=publisher).run()

    assert not report.failed
    assert report.warnings == [err]
    assert publisher.messages == ["Fed holds rates\nNo change"]


def test_cutoff_is_resolved_from_lookback():
    now = datetime(2024, 1, 2, 12, tzinfo=timezone.utc)
    journalist = FakeJournalist([])
    options = JobOptionsBuilder().fetch_until(timedelta(minutes=1)).build()
    Job(journalist, publisher=FakePublisher(), options=options, clock=lambda: now).run()

    assert journalist.calls == [now - timedelta(minutes=1)]


def test_duplicates_are_published_once(store):
    news = [make_news("Fed holds rates"), make_news("Oil jumps")]
    publisher = FakePublisher()
    job = Job(
        FakeJournalist(news),
        publisher=publisher,
        store=store.news,
        options=_options(save_to_db=True, remove_clones=True),
    )

    first = job.run()
    second = job.run()

    assert first.published == 2
    assert second.stage("remove_duplicates").status is StageStatus.EMPTY
    assert len(publisher.messages) == 2


def test_same_url_is_a_duplicate(store):
    publisher = FakePublisher()
    options = _options(save_to_db=True, remove_clones=True)
    Job(FakeJournalist([make_news("Original", link="https://x.com/a")]), publisher=publisher, store=store.news, options=options).run()

    report = Job(
        FakeJournalist([make_news("Edited title", link="https://x.com/a")]),
        publisher=publisher,
        store=store.news,
        options=options,
    ).run()

    assert report.stage("remove_duplicates").status is StageStatus.EMPTY
    assert len(publisher.messages) == 1


def test_unlisted_stocks_are_not_published():
    news = [make_news("Apple news"), make_news("Palantir news")]
    composer = FakeComposer(
        meta={
            "Apple news": {"text": "AAPL rallies", "tickers": ["AAPL"]},
            "Palantir news": {"text": "PLTR slides", "tickers": ["PLTR"]},
        }
    )
    publisher = FakePublisher()
    job = Job(
        FakeJournalist(news),
        publisher=publisher,
        composer=composer,
        stocks=STOCKS,
        options=_options(compose_text=True, omit_unlisted_stocks=True),
    )

    report = job.run()

    assert report.published == 1
    assert publisher.messages == ["[AAPL](https://short-fork.extr.app/en/AAPL?utm_source=finthread) rallies"]


def test_omit_if_all_keys_empty():
    news = [make_news("Tagged"), make_news("Untagged")]
    composer = FakeComposer(meta={"Tagged": {"hashtags": ["fed"]}})
    publisher = FakePublisher()
    Job(
        FakeJournalist(news),
        publisher=publisher,
        composer=composer,
        options=_options(compose_text=True, omit_if_all_keys_empty=True),
    ).run()

    assert publisher.messages == ["Tagged"]


def test_suspicious_news_is_omitted_only_when_asked():
    news = [make_news("SPONSORED offer", is_suspicious=True), make_news("Fed holds rates")]

    strict = FakePublisher()
    Job(FakeJournalist(news), publisher=strict, options=_options(omit_suspicious=True)).run()
    lenient = FakePublisher()
    Job(FakeJournalist(news), publisher=lenient).run()

    assert len(strict.messages) == 1
    assert len(lenient.messages) == 2


def test_filtered_news_is_never_published():
    publisher = FakePublisher()
    report = Job(
        FakeJournalist([make_news("Clickbait"), make_news("Fed holds rates")]),
        publisher=publisher,
        composer=FakeComposer(rejected=["Clickbait"]),
    ).run()

    assert report.stage("filter").count == 1
    assert publisher.messages == ["Fed holds rates\n"]


def test_save_keeps_every_fetched_item(store):
    news = [make_news("Composed"), make_news("Dropped by composer")]
    publisher = FakePublisher()
    report = Job(
        FakeJournalist(news),
        publisher=publisher,
        composer=FakeComposer(skip=["Dropped by composer"]),
        store=store.news,
        options=_options(compose_text=True, save_to_db=True),
    ).run()

    rows = store.news.find_all_by_urls([n.link for n in news])
    assert report.stage("save").count == 2
    assert len(rows) == 2
    assert publisher.messages == ["Composed"]


def test_without_save_nothing_is_written():
    report = Job(FakeJournalist([make_news("A"), make_news("B")]), publisher=FakePublisher()).run()

    save = report.stage("save")
    assert save.status is StageStatus.SKIPPED
    assert save.count == 2
    assert report.stage("update").status is StageStatus.SKIPPED


def test_compose_empty_stops_the_run():
    publisher = FakePublisher()
    report = Job(
        FakeJournalist([make_news("A")]),
        publisher=publisher,
        composer=FakeComposer(skip=["A"]),
        options=_options(compose_text=True),
    ).run()

    assert report.stage("compose").status is StageStatus.EMPTY
    assert publisher.messages == []


def test_publish_failure_still_updates_sent_records(store):
    news = [make_news("First"), make_news("Second"), make_news("Third")]
    publisher = FakePublisher(fail_at=2)
    report = Job(
        FakeJournalist(news),
        publisher=publisher,
        store=store.news,
        options=_options(save_to_db=True),
    ).run()

    assert report.failed
    assert report.stage("publish").count == 1
    assert report.stage("update").status is StageStatus.OK
    rows = {r.original_title: r for r in store.news.find_all_by_urls([n.link for n in news])}
    assert rows["First"].publication_id == "101"
    assert rows["First"].published_at is not None
    assert rows["Second"].publication_id is None
    assert rows["Third"].publication_id is None


def test_dry_run_publication_is_not_marked_published(store):
    report = Job(
        FakeJournalist([make_news("A")]),
        publisher=FakePublisher(dry_run=True),
        store=store.news,
        options=_options(save_to_db=True),
    ).run()

    assert report.stage("update").status is StageStatus.EMPTY
    assert store.news.find_all_by_urls(["https://example.com/a"])[0].published_at is None


def test_collaborator_bug_is_reported():
    class Exploding(FakeComposer):
        def filter(self, news):
            raise RuntimeError("bug")

    report = Job(FakeJournalist([make_news("A")]), publisher=FakePublisher(), composer=Exploding()).run()

    assert report.stage("run").status is StageStatus.FAILED


def test_save_requires_store():
    with pytest.raises(ValueError):
        Job(FakeJournalist(), publisher=FakePublisher(), options=_options(save_to_db=True))


def test_compose_requires_composer():
    with pytest.raises(ValueError, match="composer"):
        Job(FakeJournalist(), publisher=FakePublisher(), options=_options(compose_text=True))


def test_shared_url_in_one_batch_is_kept_once(store):
    news = [
        make_news("Fed holds", "From the wire", link="https://x.com/fed"),
        make_news("Fed holds", "From the blog", link="https://x.com/fed"),
        make_news("Oil jumps"),
    ]
    publisher = FakePublisher()
    job = Job(
        FakeJournalist(news),
        publisher=publisher,
        store=store.news,
        options=_options(save_to_db=True, remove_clones=True),
    )

    report = job.run()

    assert not report.failed
    assert report.stage("fetch").count == 2
    assert report.stage("save").count == 2
    assert publisher.messages == ["Fed holds\nFrom the wire", "Oil jumps\n"]
    assert job.run().stage("remove_duplicates").status is StageStatus.EMPTY


def test_unexpected_publisher_error_still_updates_sent_records(store):
    class Flaky(FakePublisher):
        def publish(self, text):
            if self.messages:
                raise ConnectionResetError("socket closed")
            return super().publish(text)

    news = [make_news("First"), make_news("Second")]
    report = Job(
        FakeJournalist(news),
        publisher=Flaky(),
        store=store.news,
        options=_options(save_to_db=True),
    ).run()

    publish = report.stage("publish")
    assert publish.status is StageStatus.FAILED
    assert isinstance(publish.error, PublishError)
    assert isinstance(publish.error.__cause__, ConnectionResetError)
    assert report.stage("run") is None
    assert report.stage("update").count == 1
    rows = {r.original_title: r for r in store.news.find_all_by_urls([n.link for n in news])}
    assert rows["First"].publication_id == "101"
    assert rows["Second"].publication_id is None


def test_extra_composed_items_write_nothing(store):
    class Overeager(FakeComposer):
        def compose(self, news):
            return super().compose(news) + [ComposedNews(id="invented", text="Invented")]

    news = [make_news("A")]
    publisher = FakePublisher()
    report = Job(
        FakeJournalist(news),
        publisher=publisher,
        composer=Overeager(),
        store=store.news,
        options=_options(compose_text=True, save_to_db=True),
    ).run()

    save = report.stage("save")
    assert save.status is StageStatus.FAILED
    assert isinstance(save.error, ContractViolationError)
    assert store.news.find_all_by_urls([n.link for n in news]) == []
    assert publisher.messages == []


def test_build_records_rejects_extra_composed_items():
    news = NewsList([make_news("A")])
    composed = [ComposedNews(id="x", text="x"), ComposedNews(id="y", text="y")]
    with pytest.raises(ContractViolationError):
        build_records(news, composed, channel_id="@c")


def test_build_records_attaches_meta_by_id():
    a, b = make_news("A"), make_news("B")
    records = build_records(NewsList([a, b]), [ComposedNews(id=b.id, text="bee", tickers=["MSFT"])], channel_id="@c")

    assert [r.composed_text for r in records] == ["", "bee"]
    assert records[0].meta_data is None
    assert records[1].meta().tickers == ["MSFT"]
    assert records[1].channel_id == "@c"


def _record(meta_data=None, composed_text="text", **kwargs):
    return NewsRecord(
        hash="h",
        url="https://x.com",
        original_title="t",
        original_desc="d",
        original_date=datetime(2024, 1, 2, tzinfo=timezone.utc),
        composed_text=composed_text,
        meta_data=meta_data,
        **kwargs,
    )


def test_should_publish_empty_meta_key():
    options = _options(omit_empty_meta=[MetaKey.TICKERS])
    assert not should_publish(_record('{"hashtags": ["fed"]}'), options, None)
    assert should_publish(_record('{"tickers": ["AAPL"]}'), options, None)


def test_should_publish_ignores_universe_without_tickers():
    options = _options(omit_unlisted_stocks=True)
    assert should_publish(_record('{"markets": ["SPY"]}'), options, STOCKS)
    assert should_publish(_record('{"tickers": ["PLTR"]}'), options, None)
    assert not should_publish(_record('{"tickers": ["AAPL", "PLTR"]}'), options, STOCKS)


def test_prepublish_filter_surfaces_malformed_meta():
    with pytest.raises(MetadataError):
        prepublish_filter([_record("{broken")], _options(omit_if_all_keys_empty=True))


def test_options_from_mapping():
    options = JobOptionsBuilder.from_mapping(
        {"compose_text": True, "save_to_db": False, "omit_empty_meta": ["tickers", "MARKETS"]}
    ).build()

    assert options.compose_text
    assert not options.save_to_db
    assert options.omit_empty_meta_keys == frozenset({MetaKey.TICKERS, MetaKey.MARKETS})


@pytest.mark.parametrize(
    "mapping",
    [{"publish_twice": True}, {"compose_text": "yes"}, {"omit_empty_meta": ["sectors"]}],
)
def test_options_from_mapping_rejects_bad_values(mapping):
    with pytest.raises(ConfigError):
        JobOptionsBuilder.from_mapping(mapping)


def test_options_are_immutable():
    options = JobOptions()
    with pytest.raises(AttributeError):
        options.compose_text = True
    fixed = datetime(2024, 1, 1, tzinfo=timezone.utc)
    assert JobOptions(fetch_until=fixed).cutoff(datetime.now(timezone.utc)) == fixed
