"""
This module contains the services behind the API: the booking lifecycle, testimonials
and the simulated payment flow.

Every operation converts SQLAlchemy failures into ``StorageError`` at its boundary.
Notifications are sent after the state change is committed and never affect its outcome.
"""
import logging
import secrets
import string
import time
from urllib.parse import urlencode

import anyio
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from .config import Settings
from .errors import NotFoundError, StorageError, ValidationError
from .models import (Booking, BookingCommand, BookingRead, PaymentCommand, PaymentInitiation,
                     Testimonial, TestimonialCommand, TestimonialRead)
from .notifications import BookingEvent, Notifier
from .scheduling import ConflictChecker, TimeWindow

logger = logging.getLogger(__name__)


def _storage_error(action: str, error: Exception) -> StorageError:
    logger.error(f"Failed to {action}: {error}", exc_info=error)
    return StorageError(f"Failed to {action}.")


class TherapistLocks:
    """
    One lock per therapist, shared by every request of the process.

    Holding the lock across the conflict check and the insert keeps two concurrent
    requests from booking overlapping windows for the same therapist.
    """

    def __init__(self):
        self._locks: dict[str, anyio.Lock] = {}

    def for_therapist(self, therapy_name: str) -> anyio.Lock:
        return self._locks.setdefault(therapy_name, anyio.Lock())


class BookingService:
    """
    Creates, cancels and confirms payment of bookings.

    Args:
        session (AsyncSession): The database session of the current request.
        notifier (Notifier): Receives booking_created and booking_cancelled events.
        locks (TherapistLocks): The process-wide lock registry.
        settings (Settings): Supplies the lookback margin and the maximum duration.
    """

    def __init__(self, session: AsyncSession, notifier: Notifier, locks: TherapistLocks, settings: Settings):
        self.session = session
        self.notifier = notifier
        self.locks = locks
        self.max_duration_minutes = settings.max_duration_minutes
        self.checker = ConflictChecker(settings.lookback_minutes)

    async def list_bookings(self) -> list[BookingRead]:
        """
        Returns all bookings, latest appointment first.
        """
        try:
            result = await self.session.execute(select(Booking).order_by(Booking.start_time.desc(), Booking.id.desc()))
            return [BookingRead.model_validate(b) for b in result.scalars().all()]
        except SQLAlchemyError as e:
            raise _storage_error("retrieve bookings", e)

    async def create(self, command: BookingCommand) -> BookingRead:
        """
        Persists a booking if the therapist is free for the whole appointment.

        Raises:
            ValidationError: If the duration exceeds the configured maximum, or the search range
                around the appointment falls outside the supported dates.
            ConflictError: If the appointment overlaps an existing booking of the therapist.
            StorageError: If the database fails.
        """
        if command.duration_minutes > self.max_duration_minutes:
            raise ValidationError(f"duration: must not exceed {self.max_duration_minutes} minutes")
        try:
            window = TimeWindow(command.start_time, command.duration_minutes)
            self.checker.search_range(window)
        except OverflowError as e:
            raise ValidationError("datetime: outside the supported date range") from e

        async with self.locks.for_therapist(command.therapy_name):
            try:
                await self.checker.ensure_available(self.session, command.therapy_name, window)
                booking = Booking(**command.model_dump(), payment_status="pending")
                self.session.add(booking)
                await self.session.commit()
                await self.session.refresh(booking)
            except SQLAlchemyError as e:
                await self.session.rollback()
                raise _storage_error("insert booking", e)

        created = BookingRead.model_validate(booking)
        logger.info(f"Booking {created.id} created for {created.therapy_name} at {window}")
        self._dispatch(BookingEvent(kind="booking_created", booking=created))
        return created

    async def cancel(self, booking_id: int) -> BookingRead:
        """
        Deletes a booking and returns the deleted record.

        Raises:
            NotFoundError: If no booking has this id.
            StorageError: If the database fails.
        """
        try:
            booking = await self.session.get(Booking, booking_id)
            if booking is None:
                logger.warning(f"Attempted to cancel non-existent booking ID: {booking_id}")
                raise NotFoundError(f"Booking with ID {booking_id} not found.")
            deleted = BookingRead.model_validate(booking)
            await self.session.delete(booking)
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            raise _storage_error("delete booking", e)

        logger.info(f"Booking {booking_id} cancelled")
        self._dispatch(BookingEvent(kind="booking_cancelled", booking=deleted))
        return deleted

    async def confirm_payment(self, booking_id: int) -> BookingRead:
        """
        Marks the payment of a booking as completed. Confirming twice is not an error.

        Raises:
            NotFoundError: If no booking has this id.
            StorageError: If the database fails.
        """
        try:
            booking = await self.session.get(Booking, booking_id)
            if booking is None:
                logger.warning(f"Attempted to confirm payment for non-existent booking ID: {booking_id}")
                raise NotFoundError(f"Booking with ID {booking_id} not found for payment confirmation.")
            booking.payment_status = "completed"
            await self.session.commit()
            await self.session.refresh(booking)
        except SQLAlchemyError as e:
            await self.session.rollback()
            raise _storage_error("update payment status", e)

        logger.info(f"Payment confirmed for booking {booking_id}")
        return BookingRead.model_validate(booking)

    def _dispatch(self, event: BookingEvent):
        try:
            self.notifier.notify(event)
        except Exception as e:
            logger.warning(f"Failed to send {event.kind} notification for booking {event.booking.id}: {e}",
                           exc_info=True)


class TestimonialService:
    """
    Stores and lists customer testimonials.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, command: TestimonialCommand) -> TestimonialRead:
        testimonial = Testimonial(**command.model_dump())
        try:
            self.session.add(testimonial)
            await self.session.commit()
            await self.session.refresh(testimonial)
        except SQLAlchemyError as e:
            await self.session.rollback()
            raise _storage_error("add testimonial", e)
        logger.info(f"Testimonial {testimonial.id} added by {testimonial.reviewer_name}")
        return TestimonialRead.model_validate(testimonial)

    async def list_testimonials(self) -> list[TestimonialRead]:
        try:
            result = await self.session.execute(
                select(Testimonial).order_by(Testimonial.created_at.desc(), Testimonial.id.desc())
            )
            return [TestimonialRead.model_validate(t) for t in result.scalars().all()]
        except SQLAlchemyError as e:
            raise _storage_error("retrieve testimonials", e)

    async def delete(self, testimonial_id: int):
        try:
            testimonial = await self.session.get(Testimonial, testimonial_id)
            if testimonial is None:
                raise NotFoundError(f"Testimonial with ID {testimonial_id} not found.")
            await self.session.delete(testimonial)
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            raise _storage_error("delete testimonial", e)
        logger.info(f"Testimonial {testimonial_id} deleted")


def new_transaction_id() -> str:
    """
    Returns an id shaped like ``TXN-<epoch millis>-<9 base36 chars>``.
    """
    alphabet = string.digits + string.ascii_lowercase
    suffix = "".join(secrets.choice(alphabet) for _ in range(9))
    return f"TXN-{int(time.time() * 1000)}-{suffix}"


class PaymentService:
    """
    Simulated payment gateway: answers after a fixed delay with a QR code URL.
    No money moves; confirmation is done by ``BookingService.confirm_payment``.
    """

    def __init__(self, settings: Settings):
        self.delay_seconds = settings.payment_delay_seconds
        self.qr_base_url = settings.payment_qr_base_url

    async def initiate(self, command: PaymentCommand) -> PaymentInitiation:
        transaction_id = new_transaction_id()
        logger.info(f"Initiating payment {transaction_id} for booking {command.booking_id}")
        await anyio.sleep(self.delay_seconds)
        query = urlencode({"amount": f"{command.amount:.2f}", "bookingId": command.booking_id})
        return PaymentInitiation(
            message="Payment initiation successful (simulated). Scan QR to complete.",
            qr_code_url=f"{self.qr_base_url}?{query}",
            transaction_id=transaction_id,
            status="pending",
        )
