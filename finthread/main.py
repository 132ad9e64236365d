"""Application entrypoint for the fin-thread news service.

This script wires the long-running process:
1) load configuration
2) build journalists, the composer, the store and the publisher
3) schedule the news and summary jobs (or run the news jobs once)
"""

from __future__ import annotations

import argparse
from datetime import timedelta
from typing import FrozenSet, List, Optional, Sequence

from dotenv import load_dotenv

from .errors import FinThreadError
from .fetchers import Journalist, RssProvider, load_stock_universe
from .output.telegram import Publisher, TelegramPublisher
from .pipeline.job import Job, JobOptionsBuilder
from .pipeline.summary_job import SummaryJob
from .processors.ai import create_ai_client
from .processors.composer import Composer, LLMComposer
from .scheduler import create_scheduler, register_jobs
from .storage import JsonFileStore, NewsStore
from .utils.config_loader import JournalistConfig, Settings, load_journalists_config
from .utils.error_reporting import init_error_reporting
from .utils.logging import configure_logging, get_logger
from .utils.pipeline_config import PipelineConfig


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="fin-thread: fetch financial news, compose and publish it to a Telegram channel"
    )
    parser.add_argument(
        "--config",
        default="config/journalists.yaml",
        help="Path to journalists configuration file (YAML)",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Log messages instead of sending them to Telegram",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run every news job a single time and exit",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging verbosity (defaults to LOG_LEVEL)",
    )
    return parser.parse_args(argv)


def interval_for(name: str, config: PipelineConfig) -> int:
    if name == "broad":
        return config.broad_job_interval_seconds
    return config.news_job_interval_seconds


def build_news_jobs(
    journalists: Sequence[JournalistConfig],
    *,
    pipeline_config: PipelineConfig,
    publisher: Publisher,
    composer: Composer,
    store: NewsStore,
    stocks: FrozenSet[str],
) -> List[tuple[Job, int]]:
    jobs: List[tuple[Job, int]] = []
    for jc in journalists:
        interval = interval_for(jc.name, pipeline_config)
        journalist = Journalist(
            jc.name,
            [RssProvider.from_source(s) for s in jc.sources],
            filter_keywords=jc.filter_keywords,
            flag_keywords=jc.flag_keywords,
            limit=jc.limit,
            provider_timeout=pipeline_config.provider_timeout_seconds,
        )
        options = JobOptionsBuilder.from_mapping(jc.options).fetch_until(timedelta(seconds=interval)).build()
        job = Job(
            journalist,
            publisher=publisher,
            composer=composer,
            store=store,
            stocks=stocks or None,
            options=options,
            run_timeout=pipeline_config.run_timeout_seconds,
        )
        jobs.append((job, interval))
    return jobs


def main(argv: Optional[Sequence[str]] = None) -> int:
    load_dotenv(override=False)
    args = parse_args(argv)
    configure_logging(level=args.log_level)
    logger = get_logger("finthread.main")

    try:
        settings = Settings.from_env(dry_run=args.dry_run)
        pipeline_config = PipelineConfig.from_env()
        journalists = load_journalists_config(args.config)
        publisher = TelegramPublisher(
            channel_id=settings.telegram_channel_id,
            token=settings.telegram_bot_token,
            dry_run=args.dry_run,
        )
        composer = LLMComposer(create_ai_client(backend=settings.processing_backend))
        store = JsonFileStore(settings.store_path)
        stocks = load_stock_universe(settings.stock_symbols)
        news_jobs = build_news_jobs(
            journalists,
            pipeline_config=pipeline_config,
            publisher=publisher,
            composer=composer,
            store=store.news,
            stocks=stocks,
        )
    except FinThreadError as exc:
        logger.error("Failed to load configuration: %s", exc)
        return 1

    init_error_reporting(settings.sentry_dsn, environment=settings.sentry_environment)
    logger.info(
        "Loaded %d journalist(s), %d stock symbol(s), backend=%s",
        len(journalists),
        len(stocks),
        settings.processing_backend,
    )

    if args.once:
        failed = False
        for job, _ in news_jobs:
            report = job.run()
            logger.info("%s", report.to_markdown())
            failed = failed or report.failed
        return 1 if failed else 0

    summary_job = SummaryJob(composer, publisher, store.news, store.events)
    scheduler = create_scheduler(blocking=True)
    register_jobs(scheduler, pipeline_config, news_jobs=news_jobs, summary_job=summary_job)
    logger.info("Starting scheduler")
    try:
        scheduler.start()
    except (KeyboardInterrupt, SystemExit):
        logger.info("Scheduler stopped")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
