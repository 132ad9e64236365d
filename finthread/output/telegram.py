from __future__ import annotations

import os
from abc import ABC, abstractmethod
from typing import Optional

import requests

from ..errors import ConfigError, PublishError
from ..utils.logging import get_logger

logger = get_logger("finthread.output.telegram")

_API_BASE = "https://api.telegram.org"


class Publisher(ABC):
    """Outbound channel."""

    channel_id: str

    @abstractmethod
    def publish(self, text: str) -> Optional[str]:
        """Send ``text`` and return its publication id (``None`` when not sent)."""


class TelegramPublisher(Publisher):
    """Bot API ``sendMessage`` client posting Markdown into one channel.

    In dry-run mode the message is only logged and no id is returned.
    """

    def __init__(
        self,
        *,
        channel_id: Optional[str] = None,
        token: Optional[str] = None,
        dry_run: bool = False,
        timeout: int = 15,
        session: requests.Session | None = None,
    ) -> None:
        self.channel_id = channel_id or os.environ.get("TELEGRAM_CHANNEL_ID", "")
        self.token = token or os.environ.get("TELEGRAM_BOT_TOKEN")
        if not self.token and not dry_run:
            raise ConfigError("TELEGRAM_BOT_TOKEN not set and dry_run=False")
        if not self.channel_id and not dry_run:
            raise ConfigError("TELEGRAM_CHANNEL_ID not set and dry_run=False")
        self.dry_run = dry_run
        self.timeout = timeout
        self._http = session or requests

    def publish(self, text: str) -> Optional[str]:
        if self.dry_run:
            logger.info("[DRY-RUN] Would publish to %s:\n%s", self.channel_id or "<channel>", text)
            return None

        url = f"{_API_BASE}/bot{self.token}/sendMessage"
        payload = {
            "chat_id": self.channel_id,
            "text": text,
            "parse_mode": "Markdown",
            "disable_web_page_preview": True,
        }
        try:
            resp = self._http.post(url, json=payload, timeout=self.timeout)
            data = resp.json()
        except (requests.RequestException, ValueError) as exc:
            raise PublishError(f"failed to send message to Telegram: {exc}") from exc

        if resp.status_code >= 400 or not data.get("ok"):
            raise PublishError(
                f"Telegram API error {resp.status_code}: {data.get('description', 'unknown error')}"
            )
        message_id = data.get("result", {}).get("message_id")
        logger.info("Published message %s to %s", message_id, self.channel_id)
        return str(message_id) if message_id is not None else None
