"""
This module contains the Telegram transport used by the notification worker.
"""
from __future__ import annotations

import httpx

from .errors import NotificationError

TELEGRAM_API_URL = "https://api.telegram.org"


def send_telegram_message(*, bot_token: str, chat_id: str, text: str, timeout_seconds: float = 20.0) -> None:
    """
    Posts one message to a chat through the Bot API ``sendMessage`` method.

    Raises:
        httpx.HTTPError: If the request fails or the API answers with an error status.
        NotificationError: If the API answers ``ok: false``.
    """
    with httpx.Client(base_url=TELEGRAM_API_URL, timeout=timeout_seconds) as client:
        response = client.post(
            f"/bot{bot_token}/sendMessage",
            json={"chat_id": chat_id, "text": text, "disable_web_page_preview": True},
        )
        response.raise_for_status()
        body = response.json()

    if not body.get("ok", False):
        raise NotificationError(f"Telegram rejected message for chat {chat_id}: {body.get('description', body)}")
