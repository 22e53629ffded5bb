"""
This module contains the outbound booking notifications.

The booking service only sees the ``Notifier`` interface; delivery is queued to the
Celery worker when Telegram is configured and written to the log otherwise.
"""
import logging
from dataclasses import dataclass
from typing import Literal, Protocol

from .config import Settings
from .errors import NotificationError
from .models import BookingRead
from .worker import send_chat_message

logger = logging.getLogger(__name__)

EventKind = Literal["booking_created", "booking_cancelled"]


@dataclass(frozen=True)
class BookingEvent:
    kind: EventKind
    booking: BookingRead


def render_message(event: BookingEvent) -> str:
    b = event.booking
    when = b.start_time
    if event.kind == "booking_created":
        return (
            "🧖 NEW BOOKING!\n\n"
            f"🧾 Service: {b.service}\n"
            f"🧴 Therapist: {b.therapy_name}\n"
            f"⏱️ Duration: {b.duration_minutes}min\n"
            f"💵 Price: ${b.price:.2f}\n"
            f"👤 Customer: {b.name}\n"
            f"📞 Phone: {b.phone}\n"
            f"📅 Time: {when}\n\n"
            "🔔 Please prepare the room and therapist."
        )
    return (
        "❌ BOOKING CANCELLED\n\n"
        f"👤 Customer: {b.name}\n"
        f"🧴 Service: {b.service}\n"
        f"📅 Time: {when}\n\n"
        "⚠️ This booking has been cancelled."
    )


class Notifier(Protocol):
    def notify(self, event: BookingEvent) -> None:
        ...


class LoggingNotifier:
    """
    Writes notifications to the log. Used when no chat channel is configured.
    """

    def notify(self, event: BookingEvent) -> None:
        logger.info(f"[{event.kind}] booking {event.booking.id}:\n{render_message(event)}")


class CeleryNotifier:
    """
    Queues one ``send_chat_message`` task per configured chat.
    """

    def __init__(self, chat_ids: tuple[str, ...]):
        self.chat_ids = chat_ids

    def notify(self, event: BookingEvent) -> None:
        text = render_message(event)
        for chat_id in self.chat_ids:
            try:
                send_chat_message.delay(chat_id, text)
            except Exception as e:
                raise NotificationError(f"Could not queue {event.kind} message for chat {chat_id}: {e}") from e
        logger.info(f"Queued {event.kind} notification for booking {event.booking.id}")


def build_notifier(settings: Settings) -> Notifier:
    if settings.telegram_enabled:
        return CeleryNotifier(settings.telegram_chat_ids)
    logger.warning("Telegram is not configured; booking notifications will only be logged")
    return LoggingNotifier()
