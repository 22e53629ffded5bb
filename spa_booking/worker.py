"""
This module contains the Celery worker and tasks for the booking service.

Start it with ``celery -A spa_booking.worker worker``.
"""
import logging

import httpx
from celery import Celery

from .config import get_settings
from .errors import NotificationError
from .telegram import send_telegram_message

# Configure logging
logger = logging.getLogger(__name__)

settings = get_settings()

app = Celery('spa_booking',
             broker=settings.celery_broker_url,
             backend=settings.celery_result_backend,
             include=["spa_booking.worker"])

# An unreachable broker must fail the enqueue at once instead of stalling the request.
app.conf.task_publish_retry = False


@app.task(bind=True, ignore_result=True)
def send_chat_message(self, chat_id, text):
    """
    Celery task delivering one chat message. Failures are logged and not retried.

    Args:
        chat_id (str): The Telegram chat receiving the message.
        text (str): The message text.
    """
    logger.info(f"{type(self)} -- Sending chat message to {chat_id}")
    bot_token = get_settings().telegram_bot_token
    if not bot_token:
        raise NotificationError("TELEGRAM_BOT_TOKEN is not configured")
    try:
        send_telegram_message(bot_token=bot_token, chat_id=chat_id, text=text)
    except (httpx.HTTPError, NotificationError) as e:
        logger.error(f"Failed to deliver chat message to {chat_id}: {e}")
        raise NotificationError(str(e)) from e
    logger.info(f"Chat message delivered to {chat_id}")
