"""Exception hierarchy shared across the pipeline."""

from __future__ import annotations

from typing import Iterable, List


class FinThreadError(Exception):
    """Base class for all errors raised by this package."""


class ConfigError(FinThreadError):
    """Raised when the configuration is invalid or missing required fields."""


class DateParseError(FinThreadError):
    """Raised when none of the recognised date layouts match a value."""

    def __init__(self, value: object) -> None:
        super().__init__(f"failed to parse date {value!r}")
        self.value = value


class ProviderError(FinThreadError):
    """A single news provider failed to deliver its feed."""

    def __init__(self, provider_name: str, detail: str) -> None:
        super().__init__(f"Provider {provider_name} error: {detail}")
        self.provider_name = provider_name
        self.detail = detail


class JournalistError(FinThreadError):
    """Aggregate of provider failures collected during one fan-out fetch."""

    def __init__(self, errors: Iterable[ProviderError]) -> None:
        self.errors: List[ProviderError] = list(errors)
        super().__init__("; ".join(str(e) for e in self.errors))

    @property
    def provider_names(self) -> List[str]:
        return [e.provider_name for e in self.errors]


class ComposerError(FinThreadError):
    """The generative composer failed or returned unusable output."""


class StoreError(FinThreadError):
    """The persistent store rejected a read or a write."""


class PublishError(FinThreadError):
    """The outbound channel refused a message."""


class MetadataError(FinThreadError):
    """A persisted metadata blob could not be decoded."""


class ContractViolationError(FinThreadError):
    """A collaborator returned output that breaks the pipeline's invariants."""
