"""
This module contains the configuration for the booking service.

Settings are read from the environment (and an optional ``.env`` file) once and cached.
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from functools import lru_cache

from dotenv import load_dotenv


def _parse_chat_ids(raw: str) -> tuple[str, ...]:
    # TELEGRAM_CHAT_ID accepts a single id or a comma-separated list; groups are negative.
    result: list[str] = []
    for part in (p.strip() for p in raw.split(",")):
        if not part:
            continue
        try:
            int(part)
        except ValueError as e:
            raise RuntimeError(f"Invalid TELEGRAM_CHAT_ID value: {part!r}. Expected integer chat id.") from e
        if part not in result:
            result.append(part)
    return tuple(result)


def _positive_int(name: str, default: str) -> int:
    raw = os.getenv(name, default)
    try:
        value = int(raw)
    except ValueError as e:
        raise RuntimeError(f"{name} must be an integer, got {raw!r}") from e
    if value < 1:
        raise RuntimeError(f"{name} must be >= 1")
    return value


@dataclass(frozen=True)
class Settings:
    """
    Runtime settings of the booking service.

    Attributes:
        database_url (str): SQLAlchemy async database URL.
        celery_broker_url (str): Broker used to queue notification tasks.
        celery_result_backend (str): Celery result backend.
        telegram_bot_token (str | None): Bot token; notifications are only logged when unset.
        telegram_chat_ids (tuple[str, ...]): Chats receiving booking alerts.
        lookback_minutes (int): Margin subtracted from a proposed start when fetching candidate bookings.
        max_duration_minutes (int): Longest bookable appointment. Never larger than the lookback.
        payment_delay_seconds (float): Delay of the simulated payment initiation.
        payment_qr_base_url (str): Image URL returned as the simulated payment QR code.
    """
    database_url: str = "sqlite+aiosqlite:///spa-booking.db"
    celery_broker_url: str = "redis://localhost:6379/0"
    celery_result_backend: str = "db+sqlite:///spa-booking-results.db"

    telegram_bot_token: str | None = None
    telegram_chat_ids: tuple[str, ...] = ()

    lookback_minutes: int = 120
    max_duration_minutes: int = 120

    payment_delay_seconds: float = 1.0
    payment_qr_base_url: str = "https://i.postimg.cc/Dz3sgw1N/QR1.jpg"

    cors_origins: tuple[str, ...] = ("*",)
    log_level: str = "INFO"
    host: str = "0.0.0.0"
    port: int = 8000

    @property
    def telegram_enabled(self) -> bool:
        return bool(self.telegram_bot_token and self.telegram_chat_ids)


def load_settings(dotenv_path: str | None = None) -> Settings:
    """
    Builds the settings from environment variables.

    Raises:
        RuntimeError: If a value is malformed, or if the maximum booking duration exceeds
            the lookback margin (conflicts with longer bookings would go unnoticed).
    """
    load_dotenv(dotenv_path=dotenv_path, override=False)

    lookback_minutes = _positive_int("BOOKING_LOOKBACK_MINUTES", "120")
    max_duration_minutes = _positive_int("MAX_BOOKING_DURATION_MINUTES", str(lookback_minutes))
    if max_duration_minutes > lookback_minutes:
        raise RuntimeError(
            f"MAX_BOOKING_DURATION_MINUTES ({max_duration_minutes}) must not exceed "
            f"BOOKING_LOOKBACK_MINUTES ({lookback_minutes})"
        )

    try:
        payment_delay_seconds = float(os.getenv("PAYMENT_DELAY_SECONDS", "1.0"))
    except ValueError as e:
        raise RuntimeError("PAYMENT_DELAY_SECONDS must be a number") from e
    if payment_delay_seconds < 0:
        raise RuntimeError("PAYMENT_DELAY_SECONDS must be >= 0")

    origins = tuple(o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip())

    return Settings(
        database_url=os.getenv("DATABASE_URL", Settings.database_url),
        celery_broker_url=os.getenv("CELERY_BROKER_URL", Settings.celery_broker_url),
        celery_result_backend=os.getenv("CELERY_RESULT_BACKEND", Settings.celery_result_backend),
        telegram_bot_token=os.getenv("TELEGRAM_BOT_TOKEN") or None,
        telegram_chat_ids=_parse_chat_ids(os.getenv("TELEGRAM_CHAT_ID", "")),
        lookback_minutes=lookback_minutes,
        max_duration_minutes=max_duration_minutes,
        payment_delay_seconds=payment_delay_seconds,
        payment_qr_base_url=os.getenv("PAYMENT_QR_BASE_URL", Settings.payment_qr_base_url),
        cors_origins=origins or ("*",),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        host=os.getenv("HOST", Settings.host),
        port=_positive_int("PORT", str(Settings.port)),
    )


@lru_cache
def get_settings() -> Settings:
    """
    Dependency that provides the process-wide settings.
    """
    return load_settings()


def setup_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s - %(message)s",
    )
