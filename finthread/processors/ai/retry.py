from __future__ import annotations

import os
import time
from typing import Callable, TypeVar

import requests

from ...utils.logging import get_logger

T = TypeVar("T")
logger = get_logger("finthread.ai.retry")


def with_retries(fn: Callable[[], T], *, retries: int = 2, backoff: float = 1.5) -> T:
    """Call ``fn`` and retry transient HTTP failures with exponential backoff."""
    # Environment overrides for quick runs: AI_RETRIES, AI_BACKOFF
    env_retries = os.getenv("AI_RETRIES")
    if env_retries is not None and env_retries.isdigit():
        retries = int(env_retries)
    env_backoff = os.getenv("AI_BACKOFF")
    if env_backoff is not None:
        try:
            backoff = float(env_backoff)
        except ValueError:
            logger.warning("Ignoring invalid AI_BACKOFF=%r", env_backoff)

    for attempt in range(retries + 1):
        try:
            return fn()
        except requests.RequestException as exc:
            if attempt >= retries:
                raise
            sleep_s = backoff ** attempt
            logger.warning("AI call failed (attempt %s/%s): %s; retrying in %.1fs", attempt + 1, retries + 1, exc, sleep_s)
            time.sleep(sleep_s)
    raise AssertionError("unreachable")
