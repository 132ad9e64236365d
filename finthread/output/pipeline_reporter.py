from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from ..utils.error_reporting import capture_failure


class StageStatus(str, Enum):
    OK = "ok"
    EMPTY = "empty"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(slots=True)
class StageOutcome:
    stage: str
    status: StageStatus
    count: int = 0
    error: Optional[BaseException] = None

    def describe(self) -> str:
        if self.status is StageStatus.FAILED:
            return f"{self.stage}: failed ({self.error})"
        return f"{self.stage}: {self.status.value} ({self.count})"


@dataclass(slots=True)
class RunReport:
    """Outcome of one job run, one entry per stage that was reached."""

    job: str
    stages: List[StageOutcome] = field(default_factory=list)
    warnings: List[BaseException] = field(default_factory=list)

    def add(self, outcome: StageOutcome) -> StageOutcome:
        self.stages.append(outcome)
        if outcome.status is StageStatus.FAILED:
            capture_failure(self.job, outcome.stage, outcome.error)
        return outcome

    def warn(self, error: BaseException) -> None:
        """Record a non-fatal error, such as a partial fetch."""
        self.warnings.append(error)
        capture_failure(self.job, "warning", error)

    def stage(self, name: str) -> Optional[StageOutcome]:
        for s in self.stages:
            if s.stage == name:
                return s
        return None

    @property
    def failed(self) -> bool:
        return any(s.status is StageStatus.FAILED for s in self.stages)

    @property
    def error(self) -> Optional[BaseException]:
        for s in self.stages:
            if s.status is StageStatus.FAILED:
                return s.error
        return None

    @property
    def published(self) -> int:
        s = self.stage("publish")
        return s.count if s else 0

    def to_markdown(self) -> str:
        lines = [f"### {self.job} run\n"]
        lines.extend(f"- {s.describe()}" for s in self.stages)
        if self.warnings:
            lines.append(f"- Warnings: {len(self.warnings)}")
        return "\n".join(lines) + "\n"
