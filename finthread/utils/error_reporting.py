"""Optional Sentry error reporting.

Nothing leaves the process unless ``init_error_reporting`` was called with a
DSN; before that the SDK's capture calls are no-ops.
"""

from __future__ import annotations

from typing import Optional

import sentry_sdk

from .logging import get_logger

logger = get_logger("finthread.error_reporting")


def init_error_reporting(dsn: str, *, environment: Optional[str] = None) -> bool:
    """Initialise the Sentry SDK when ``dsn`` is set. Returns whether it was."""
    if not dsn:
        logger.info("SENTRY_DSN not set; error reporting disabled")
        return False
    sentry_sdk.init(dsn=dsn, environment=environment or None)
    logger.info("Error reporting enabled")
    return True


def capture_failure(job: str, stage: str, error: Optional[BaseException]) -> None:
    """Send one failed stage (or fetch warning) tagged with its job and stage."""
    with sentry_sdk.new_scope() as scope:
        scope.set_tag("job", job)
        scope.set_tag("stage", stage)
        if error is None:
            sentry_sdk.capture_message(f"[{job}][{stage}] failed", level="error")
        else:
            sentry_sdk.capture_exception(error)
