"""
This module contains the data models for the booking service.

ORM rows are defined with alchemical; request and response bodies with pydantic.
Parsing of string-embedded units (``"60min"``, ``"$60"``) happens here, at the API edge.
"""
import re
from datetime import datetime, timedelta, timezone
from typing import Literal

from alchemical import Model
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from sqlalchemy import Boolean, Column, DateTime, Index, Integer, Numeric, String, Text

PaymentStatus = Literal["pending", "completed"]

TIMESTAMP_FORMAT = "%Y-%m-%d %I:%M %p"
EMAIL_PATTERN = r"^[\w\.+-]+@[\w\.-]+\.\w+$"


def format_timestamp(value: datetime) -> str:
    """
    Renders a timestamp as ``YYYY-MM-DD hh:mm AM/PM``.
    """
    return value.strftime(TIMESTAMP_FORMAT)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _strip_currency(value):
    if isinstance(value, str):
        cleaned = re.sub(r"[^0-9.]", "", value)
        if not cleaned:
            raise ValueError("must contain a number")
        return cleaned
    return value


class Booking(Model):
    """
    Represents a booking in the database.

    Attributes:
        id (int): The primary key of the booking.
        service (str): The booked service.
        therapy_name (str): The therapist; the resource checked for scheduling conflicts.
        duration_minutes (int): Length of the appointment.
        price (float): Price without currency symbol.
        name (str): The name of the customer.
        phone (str): The phone number of the customer.
        start_time (datetime): Start of the appointment.
        payment_status (PaymentStatus): ``pending`` until the payment is confirmed.
    """
    __tablename__ = "bookings"
    __table_args__ = (Index("ix_bookings_therapy_name_start_time", "therapy_name", "start_time"),)

    id = Column(Integer, primary_key=True)
    service = Column(String, nullable=False)
    therapy_name = Column(String, nullable=False)
    duration_minutes = Column(Integer, nullable=False)
    price = Column(Numeric(10, 2, asdecimal=False), nullable=False)
    name = Column(String, nullable=False)
    phone = Column(String, nullable=False)
    start_time = Column(DateTime, nullable=False)
    payment_status = Column(String, nullable=False, default="pending")
    created_at = Column(DateTime, default=_utcnow)

    @property
    def end_time(self) -> datetime:
        return self.start_time + timedelta(minutes=self.duration_minutes)


class Testimonial(Model):
    """
    Represents a customer review in the database.
    """
    __tablename__ = "testimonials"

    id = Column(Integer, primary_key=True)
    reviewer_name = Column(String, nullable=False)
    reviewer_email = Column(String, nullable=False)
    review_title = Column(String, nullable=True)
    review_text = Column(Text, nullable=False)
    rating = Column(Integer, nullable=False)
    genuine_opinion = Column(Boolean, nullable=False)
    created_at = Column(DateTime, default=_utcnow, nullable=False)


class BookingCommand(BaseModel):
    """
    Represents the command for creating a booking.

    ``duration`` accepts ``"60min"`` or a plain number of minutes, ``price`` accepts ``"$60"`` or a number.
    Timezone-aware ``datetime`` values are converted to naive UTC.
    """
    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)

    service: str = Field(..., min_length=1, description="Name of the booked service")
    therapy_name: str = Field(..., alias="therapyName", min_length=1, description="Therapist performing the service")
    duration_minutes: int = Field(..., alias="duration", gt=0, description="Duration in minutes")
    price: float = Field(..., ge=0, description="Price of the service")
    name: str = Field(..., min_length=1, description="Name of the customer")
    phone: str = Field(..., min_length=1, description="Phone number of the customer")
    start_time: datetime = Field(..., alias="datetime", description="Start of the appointment")

    @field_validator("duration_minutes", mode="before")
    @classmethod
    def parse_duration(cls, value):
        if isinstance(value, str):
            match = re.fullmatch(r"\s*(\d+)\s*(min|mins|minutes)?\s*", value, re.IGNORECASE)
            if not match:
                raise ValueError("must be a number of minutes such as '60min'")
            return int(match.group(1))
        return value

    @field_validator("price", mode="before")
    @classmethod
    def parse_price(cls, value):
        return _strip_currency(value)

    @field_validator("start_time")
    @classmethod
    def to_naive_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is not None:
            try:
                return value.astimezone(timezone.utc).replace(tzinfo=None)
            except OverflowError:
                raise ValueError("is outside the supported date range")
        return value

    @model_validator(mode="after")
    def check_end_in_range(self):
        try:
            self.start_time + timedelta(minutes=self.duration_minutes)
        except OverflowError:
            raise ValueError("datetime: appointment would end outside the supported date range")
        return self


class BookingRead(BaseModel):
    """
    Booking as returned by the API, timestamps rendered as ``YYYY-MM-DD hh:mm AM/PM``.
    """
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    id: int
    service: str
    therapy_name: str = Field(..., alias="therapyName")
    duration_minutes: int = Field(..., alias="duration")
    price: float
    name: str
    phone: str
    start_time: str = Field(..., alias="datetime")
    end_time: str = Field(..., alias="endTime")
    payment_status: PaymentStatus = Field(..., alias="paymentStatus")

    @field_validator("start_time", "end_time", mode="before")
    @classmethod
    def render_timestamp(cls, value):
        return format_timestamp(value) if isinstance(value, datetime) else value


class BookingReference(BaseModel):
    """
    Body of the endpoints that act on an existing booking.
    """
    model_config = ConfigDict(populate_by_name=True)

    booking_id: int = Field(..., alias="bookingId", gt=0)


class PaymentCommand(BaseModel):
    """
    Represents the command for initiating a (simulated) payment.
    """
    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)

    amount: float = Field(..., gt=0)
    service_name: str = Field(..., alias="serviceName", min_length=1)
    booking_id: int = Field(..., alias="bookingId", gt=0)

    @field_validator("amount", mode="before")
    @classmethod
    def parse_amount(cls, value):
        return _strip_currency(value)


class PaymentInitiation(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    message: str
    qr_code_url: str = Field(..., alias="qrCodeUrl")
    transaction_id: str = Field(..., alias="transactionId")
    status: PaymentStatus = "pending"


class TestimonialCommand(BaseModel):
    """
    Represents the command for submitting a testimonial. ``reviewTitle`` is optional.
    """
    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)

    reviewer_name: str = Field(..., alias="reviewerName", min_length=1)
    reviewer_email: str = Field(..., alias="reviewerEmail", pattern=EMAIL_PATTERN)
    review_title: str | None = Field(None, alias="reviewTitle")
    review_text: str = Field(..., alias="reviewText", min_length=1)
    rating: int = Field(..., ge=1, le=5)
    genuine_opinion: bool = Field(..., alias="genuineOpinion")


class TestimonialRead(BaseModel):
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    id: int
    reviewer_name: str = Field(..., alias="reviewerName")
    reviewer_email: str = Field(..., alias="reviewerEmail")
    review_title: str | None = Field(None, alias="reviewTitle")
    review_text: str = Field(..., alias="reviewText")
    rating: int
    genuine_opinion: bool = Field(..., alias="genuineOpinion")
    created_at: str = Field(..., alias="createdAt")

    @field_validator("created_at", mode="before")
    @classmethod
    def render_timestamp(cls, value):
        return format_timestamp(value) if isinstance(value, datetime) else value
