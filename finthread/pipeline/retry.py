from __future__ import annotations

import time
from typing import Callable

from ..output.pipeline_reporter import RunReport
from ..utils.logging import get_logger

logger = get_logger("finthread.pipeline.retry")


def run_attempts(
    attempt: Callable[[], RunReport],
    *,
    attempts: int = 5,
    delay: float = 600.0,
    retryable: Callable[[RunReport], bool],
    sleep: Callable[[float], None] = time.sleep,
) -> RunReport:
    """Run ``attempt`` until it succeeds, is not retryable, or attempts run out.

    Uses a fixed ``delay`` between attempts. Returns the last report.
    """
    report = attempt()
    for n in range(1, attempts):
        if not report.failed or not retryable(report):
            break
        logger.warning(
            "[%s] attempt %d/%d failed: %s; retrying in %.0fs", report.job, n, attempts, report.error, delay
        )
        sleep(delay)
        report = attempt()
    return report
