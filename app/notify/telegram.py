import logging
import re
from dataclasses import dataclass
from typing import Optional

import requests

from app.notify.formatter import SUMMARY_MARKER

logger = logging.getLogger(__name__)

MAX_MESSAGE_LENGTH = 4096
TRUNCATION_NOTICE = '\n\n... (message truncated due to length limit)\n\n'

_PARTIAL_ENTITY = re.compile(r'&[#\w]*$')


@dataclass(frozen=True)
class SendResult:
    """Outcome of one delivery attempt."""
    ok: bool
    error: Optional[str] = None
    status_code: Optional[int] = None


def _cut_at_line(text: str, limit: int) -> str:
    """Longest prefix of whole lines within `limit`. Formatted lines close their own tags."""
    if len(text) <= limit:
        return text
    cut = text.rfind('\n', 0, limit + 1)
    return text[:cut] if cut > 0 else ''


def truncate_message(message: str, limit: int = MAX_MESSAGE_LENGTH) -> str:
    """Cut a message to `limit` characters at line boundaries, keeping the summary tail."""
    if len(message) <= limit:
        return message

    marker = message.rfind(SUMMARY_MARKER)
    tail = message[marker:] if marker != -1 else ''
    if len(tail) > limit // 2:
        # The summary is one line opening with a closed tag; only escaped text gets cut
        tail = _PARTIAL_ENTITY.sub('', tail[:limit // 2])
    body = message[:marker] if marker != -1 else message
    head = _cut_at_line(body, max(0, limit - len(TRUNCATION_NOTICE) - len(tail)))
    return head + TRUNCATION_NOTICE + tail


class TelegramNotifier:
    def __init__(self, bot_token: Optional[str], chat_id: Optional[str], timeout: float = 10.0):
        self.bot_token = bot_token
        self.chat_id = chat_id
        self.timeout = timeout

    @classmethod
    def from_config(cls, config) -> 'TelegramNotifier':
        return cls(config.TELEGRAM_BOT_TOKEN, config.TELEGRAM_CHAT_ID, timeout=config.TELEGRAM_TIMEOUT)

    @property
    def configured(self) -> bool:
        return bool(self.bot_token and self.chat_id)

    def send(self, text: str) -> SendResult:
        """Send an HTML message to the configured chat."""
        if not self.configured:
            logger.error("Telegram credentials not configured")
            return SendResult(ok=False, error='Telegram credentials not configured')

        if len(text) > MAX_MESSAGE_LENGTH:
            logger.warning(f"Message too long ({len(text)} chars), truncating to {MAX_MESSAGE_LENGTH}")
            text = truncate_message(text)

        url = f"https://api.telegram.org/bot{self.bot_token}/sendMessage"
        payload = {
            "chat_id": self.chat_id,
            "text": text,
            "parse_mode": "HTML"
        }

        try:
            response = requests.post(
                url,
                json=payload,
                headers={"Content-Type": "application/json"},
                timeout=self.timeout
            )
        except requests.RequestException as e:
            logger.error(f"Telegram send error: {e}")
            return SendResult(ok=False, error=f"Network/Request error: {e}")

        try:
            result = response.json()
        except ValueError:
            result = {}

        if response.status_code != 200 or not result.get("ok"):
            error = (
                f"Telegram API error: {result.get('description') or response.text or 'Unknown error'} "
                f"(code: {result.get('error_code') or response.status_code})"
            )
            logger.error(error)
            return SendResult(ok=False, error=error, status_code=response.status_code)

        logger.info(f"Telegram message sent ({len(text)} chars)")
        return SendResult(ok=True, status_code=response.status_code)
