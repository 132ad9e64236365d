from __future__ import annotations

from abc import ABC, abstractmethod


class AIClient(ABC):
    """Text-generation backend used by the composer."""

    model: str

    @abstractmethod
    def generate(self, prompt: str, *, temperature: float = 0.7, max_tokens: int = 2048) -> str:
        """Return the raw model completion for ``prompt``."""
