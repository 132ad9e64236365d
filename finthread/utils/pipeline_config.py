from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping

from ..errors import ConfigError


def _int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from exc
    if value <= 0:
        raise ConfigError(f"{name} must be positive, got {value}")
    return value


def _float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    try:
        value = float(raw)
    except ValueError as exc:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from exc
    if value <= 0:
        raise ConfigError(f"{name} must be positive, got {value}")
    return value


@dataclass(frozen=True)
class PipelineConfig:
    """Job cadences and time budgets."""

    news_job_interval_seconds: int = 60
    broad_job_interval_seconds: int = 90
    summary_job_cron_hours: str = "8,13,19"
    calendar_updates_interval_seconds: int = 300
    run_timeout_seconds: float = 25.0
    provider_timeout_seconds: float = 10.0

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> "PipelineConfig":
        env = os.environ if env is None else env
        hours = env.get("SUMMARY_JOB_CRON_HOURS") or cls.summary_job_cron_hours
        for part in hours.split(","):
            if not part.strip().isdigit() or not 0 <= int(part) <= 23:
                raise ConfigError(f"SUMMARY_JOB_CRON_HOURS must be comma-separated hours 0-23, got {hours!r}")
        return cls(
            news_job_interval_seconds=_int(env, "NEWS_JOB_INTERVAL_SECONDS", cls.news_job_interval_seconds),
            broad_job_interval_seconds=_int(env, "BROAD_JOB_INTERVAL_SECONDS", cls.broad_job_interval_seconds),
            summary_job_cron_hours=hours,
            calendar_updates_interval_seconds=_int(
                env, "CALENDAR_UPDATES_INTERVAL_SECONDS", cls.calendar_updates_interval_seconds
            ),
            run_timeout_seconds=_float(env, "RUN_TIMEOUT_SECONDS", cls.run_timeout_seconds),
            provider_timeout_seconds=_float(env, "PROVIDER_TIMEOUT_SECONDS", cls.provider_timeout_seconds),
        )

    def summary_hours(self) -> list[int]:
        return [int(h) for h in self.summary_job_cron_hours.split(",")]
