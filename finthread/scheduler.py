from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional, Sequence

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.schedulers.base import BaseScheduler
from apscheduler.schedulers.blocking import BlockingScheduler

from .pipeline.calendar_job import CalendarJob
from .pipeline.job import Job
from .pipeline.summary_job import SummaryJob
from .utils.logging import get_logger
from .utils.pipeline_config import PipelineConfig

logger = get_logger("finthread.scheduler")

# Late ticks are merged and a job never overlaps itself
JOB_DEFAULTS = {
    "coalesce": True,
    "max_instances": 1,
    "misfire_grace_time": 30,
}


def create_scheduler(*, blocking: bool = True) -> BaseScheduler:
    cls = BlockingScheduler if blocking else BackgroundScheduler
    return cls(job_defaults=dict(JOB_DEFAULTS), timezone=timezone.utc)


def previous_slot(now: datetime, hours: Sequence[int]) -> datetime:
    """Start of the summary window: the scheduled hour before the one firing at ``now``.

    Looks back into the previous day when ``now`` is the first slot of the day.
    """
    threshold = now - timedelta(minutes=1)
    today = now.replace(hour=0, minute=0, second=0, microsecond=0)
    slots = [day + timedelta(hours=h) for day in (today - timedelta(days=1), today) for h in sorted(hours)]
    return [s for s in slots if s < threshold][-1]


def register_jobs(
    scheduler: BaseScheduler,
    config: PipelineConfig,
    *,
    news_jobs: Sequence[tuple[Job, int]],
    summary_job: Optional[SummaryJob] = None,
    calendar_job: Optional[CalendarJob] = None,
) -> None:
    """Attach every job to ``scheduler``.

    ``news_jobs`` pairs each job with its interval in seconds; the job's own
    options resolve a fresh fetch cutoff on each tick.
    """
    for job, interval in news_jobs:
        scheduler.add_job(job.run, "interval", seconds=interval, id=f"news:{job.name}", name=f"news:{job.name}")
        logger.info("Scheduled news job %s every %ds", job.name, interval)

    if summary_job is not None:
        hours = config.summary_hours()

        def run_summary() -> None:
            now = datetime.now(timezone.utc)
            summary_job.run(previous_slot(now, hours))

        scheduler.add_job(run_summary, "cron", hour=",".join(str(h) for h in hours), minute=0, id="summary")
        logger.info("Scheduled summary job at hours %s UTC", config.summary_job_cron_hours)

    if calendar_job is not None:
        scheduler.add_job(calendar_job.run_weekly, "cron", day_of_week="mon", hour=6, minute=0, id="calendar:weekly")
        scheduler.add_job(
            calendar_job.run_updates,
            "interval",
            seconds=config.calendar_updates_interval_seconds,
            id="calendar:updates",
        )
        logger.info("Scheduled calendar jobs")
