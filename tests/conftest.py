from __future__ import annotations

from datetime import datetime

import pytest
from fastapi.testclient import TestClient

from spa_booking.config import Settings
from spa_booking.db import close_database, create_database, create_db_and_tables
from spa_booking.errors import NotificationError
from spa_booking.main import create_app, get_notifier
from spa_booking.models import BookingCommand
from spa_booking.notifications import BookingEvent


class RecordingNotifier:
    # Stands in for the chat channel; tests must never reach the network.
    def __init__(self, *, fail: bool = False) -> None:
        self.events: list[BookingEvent] = []
        self.fail = fail

    def notify(self, event: BookingEvent) -> None:
        self.events.append(event)
        if self.fail:
            raise NotificationError("chat channel down")

    @property
    def kinds(self) -> list[str]:
        return [e.kind for e in self.events]


def booking_command(*, therapist: str = "Anna", start: datetime, duration: int = 60) -> BookingCommand:
    return BookingCommand.model_validate(
        {
            "service": "Swedish Massage",
            "therapyName": therapist,
            "duration": f"{duration}min",
            "price": "$60",
            "name": "Jane Doe",
            "phone": "+1 555 0100",
            "datetime": start.isoformat(),
        }
    )


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'bookings.db'}",
        payment_delay_seconds=0,
    )


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def client(settings: Settings, notifier: RecordingNotifier):
    app = create_app(settings)
    app.dependency_overrides[get_notifier] = lambda: notifier
    with TestClient(app) as c:
        yield c


@pytest.fixture
async def db(settings: Settings):
    database = create_database(settings.database_url)
    await create_db_and_tables(database)
    yield database
    await close_database(database)
