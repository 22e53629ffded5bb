"""
This module contains the scheduling rules of the booking service: appointment windows,
the overlap test and the per-therapist conflict check.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from .errors import ConflictError
from .models import Booking, format_timestamp

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TimeWindow:
    """
    Half-open interval ``[start, end)`` occupied by an appointment.

    Attributes:
        start (datetime): First minute of the appointment.
        duration_minutes (int): Strictly positive length of the appointment.
    """
    start: datetime
    duration_minutes: int
    end: datetime = field(init=False)

    def __post_init__(self):
        if self.duration_minutes <= 0:
            raise ValueError(f"Duration must be positive, got {self.duration_minutes} minutes")
        object.__setattr__(self, "end", self.start + timedelta(minutes=self.duration_minutes))

    @classmethod
    def of(cls, booking: Booking) -> "TimeWindow":
        return cls(booking.start_time, booking.duration_minutes)

    def __str__(self) -> str:
        return f"{format_timestamp(self.start)} to {format_timestamp(self.end)}"


def overlaps(a: TimeWindow, b: TimeWindow) -> bool:
    """
    Returns True if the two windows share at least one instant.
    Back-to-back windows (``a.end == b.start``) do not overlap.
    """
    return a.start < b.end and b.start < a.end


class ConflictChecker:
    """
    Finds existing bookings of a therapist that overlap a proposed window.

    Only the start of stored bookings is filtered on, so candidates are fetched from
    ``lookback_minutes`` before the proposed start. Bookings longer than the lookback
    would be missed; callers must cap durations at ``lookback_minutes``.
    """

    def __init__(self, lookback_minutes: int = 120):
        if lookback_minutes <= 0:
            raise ValueError("lookback_minutes must be positive")
        self.lookback = timedelta(minutes=lookback_minutes)

    def search_range(self, window: TimeWindow) -> tuple[datetime, datetime]:
        """
        Returns the bounds on the start of candidate bookings.

        Raises:
            OverflowError: If the lower bound falls before ``datetime.min``.
        """
        return window.start - self.lookback, window.end

    async def candidates(self, session: AsyncSession, therapy_name: str, window: TimeWindow) -> list[Booking]:
        earliest, latest = self.search_range(window)
        result = await session.execute(
            select(Booking)
            .where(
                Booking.therapy_name == therapy_name,
                Booking.start_time >= earliest,
                Booking.start_time <= latest,
            )
            .order_by(Booking.start_time)
        )
        return list(result.scalars().all())

    async def find_conflict(self, session: AsyncSession, therapy_name: str, window: TimeWindow) -> Booking | None:
        """
        Returns the first existing booking overlapping ``window``, or None if the slot is free.
        """
        for existing in await self.candidates(session, therapy_name, window):
            if overlaps(window, TimeWindow.of(existing)):
                return existing
        return None

    async def ensure_available(self, session: AsyncSession, therapy_name: str, window: TimeWindow):
        """
        Raises:
            ConflictError: If the therapist already has a booking overlapping ``window``.
        """
        existing = await self.find_conflict(session, therapy_name, window)
        if existing is not None:
            logger.info(f"Rejected booking for {therapy_name} at {window}: overlaps booking {existing.id}")
            raise ConflictError(
                f"Therapist {therapy_name} already has a booking from {TimeWindow.of(existing)}. "
                "Please choose another time."
            )
