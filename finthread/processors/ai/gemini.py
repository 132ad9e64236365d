from __future__ import annotations

import os

import requests

from ...errors import ConfigError
from .base import AIClient


class GeminiClient(AIClient):
    """HTTP client for Gemini via Google AI Studio API.

    Environment:
      - GOOGLE_API_KEY (required)
      - GEMINI_MODEL (default: gemini-1.5-flash)
    """

    def __init__(self, *, timeout: int = 60) -> None:
        self.api_key = os.environ.get("GOOGLE_API_KEY")
        if not self.api_key:
            raise ConfigError("GOOGLE_API_KEY is required for Gemini backend")
        self.model = os.environ.get("GEMINI_MODEL", "gemini-1.5-flash")
        self.timeout = timeout

    def generate(self, prompt: str, *, temperature: float = 0.7, max_tokens: int = 2048) -> str:
        url = (
            "https://generativelanguage.googleapis.com/v1beta/models/"
            f"{self.model}:generateContent?key={self.api_key}"
        )
        payload = {
            "contents": [{"parts": [{"text": prompt}]}],
            "generationConfig": {"temperature": temperature, "maxOutputTokens": max_tokens},
        }
        resp = requests.post(url, json=payload, timeout=self.timeout)
        resp.raise_for_status()
        data = resp.json()
        # Extract text from the first candidate
        candidates = data.get("candidates") or []
        if not candidates:
            return ""
        parts = candidates[0].get("content", {}).get("parts") or []
        return "".join(p.get("text", "") for p in parts).strip()
