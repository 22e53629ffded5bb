"""
This module contains the main FastAPI application for the booking service.
"""
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone

import uvicorn
from fastapi import APIRouter, Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from .config import Settings, get_settings, setup_logging
from .db import close_database, create_database, create_db_and_tables, get_db_session
from .errors import BookingError
from .models import (BookingCommand, BookingRead, BookingReference, PaymentCommand, PaymentInitiation,
                     TestimonialCommand, TestimonialRead)
from .notifications import Notifier, build_notifier
from .services import BookingService, PaymentService, TestimonialService, TherapistLocks

logger = logging.getLogger(__name__)

router = APIRouter()


def get_app_settings(request: Request) -> Settings:
    """
    Dependency that provides the settings the application was created with.
    """
    return request.app.state.settings


def get_notifier(request: Request) -> Notifier:
    """
    Dependency that provides the notifier built at startup.
    """
    return request.app.state.notifier


def get_booking_service(
    request: Request,
    db: AsyncSession = Depends(get_db_session),
    notifier: Notifier = Depends(get_notifier),
    settings: Settings = Depends(get_app_settings),
) -> BookingService:
    return BookingService(db, notifier, request.app.state.locks, settings)


def get_testimonial_service(db: AsyncSession = Depends(get_db_session)) -> TestimonialService:
    return TestimonialService(db)


def get_payment_service(settings: Settings = Depends(get_app_settings)) -> PaymentService:
    return PaymentService(settings)


@asynccontextmanager
async def lifespan(api_app: FastAPI):
    """
    Asynchronous context manager for the lifespan of the FastAPI application.
    It opens the database, creates the tables and builds the notifier on startup,
    and closes the database on shutdown.

    Args:
        api_app (FastAPI): The FastAPI application instance.
    """
    settings = api_app.state.settings
    setup_logging(settings.log_level)
    api_app.state.db = create_database(settings.database_url)
    api_app.state.locks = TherapistLocks()
    api_app.state.notifier = build_notifier(settings)
    await create_db_and_tables(api_app.state.db)
    logger.info("Booking service started")
    try:
        yield
    finally:
        await close_database(api_app.state.db)


def describe_validation_errors(errors) -> str:
    parts = []
    for error in errors:
        field = ".".join(str(p) for p in error["loc"] if p != "body") or "body"
        parts.append(f"{field} ({error['msg']})")
    return "Invalid or missing fields: " + "; ".join(parts)


async def booking_error_handler(request: Request, exc: BookingError):
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


async def request_validation_error_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(status_code=400, content={"error": describe_validation_errors(exc.errors())})


async def unhandled_error_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=exc)
    return JSONResponse(status_code=500, content={"error": "Internal server error."})


def create_app(settings: Settings | None = None) -> FastAPI:
    """
    Builds the FastAPI application.

    Args:
        settings (Settings | None): Settings to run with; read from the environment when omitted.
    """
    api_app = FastAPI(title="Spa booking backend", lifespan=lifespan)
    api_app.state.settings = settings or get_settings()
    api_app.add_middleware(
        CORSMiddleware,
        allow_origins=list(api_app.state.settings.cors_origins),
        allow_methods=["*"],
        allow_headers=["*"],
    )
    api_app.add_exception_handler(BookingError, booking_error_handler)
    api_app.add_exception_handler(RequestValidationError, request_validation_error_handler)
    api_app.add_exception_handler(Exception, unhandled_error_handler)
    api_app.include_router(router)
    return api_app


@router.get("/")
async def root():
    """
    Root endpoint for the API.
    """
    return {"message": "Spa booking backend"}


@router.get("/health")
async def health():
    """
    Liveness check.
    """
    return {"ok": True, "time": datetime.now(timezone.utc).isoformat()}


@router.get("/bookings", response_model=list[BookingRead])
async def list_bookings(service: BookingService = Depends(get_booking_service)):
    """
    Lists all bookings, latest appointment first.
    """
    return await service.list_bookings()


@router.post("/bookings", response_model=BookingRead, status_code=201)
async def create_booking(booking_cmd: BookingCommand, service: BookingService = Depends(get_booking_service)):
    """
    Creates a new booking after checking the therapist is free.

    Args:
        booking_cmd (BookingCommand): The booking command with the booking details.
        service (BookingService): The booking service.

    Returns:
        BookingRead: The created booking. Overlapping appointments are answered with 409.
    """
    return await service.create(booking_cmd)


@router.delete("/bookings/{booking_id}")
async def delete_booking(booking_id: int, service: BookingService = Depends(get_booking_service)):
    """
    Cancels (deletes) a booking.

    Args:
        booking_id (int): The ID of the booking to delete.
        service (BookingService): The booking service.
    """
    deleted = await service.cancel(booking_id)
    return {"message": f"Booking with ID {booking_id} deleted successfully.", "booking": deleted}


@router.post("/cancel-via-bot")
async def cancel_via_bot(ref: BookingReference, service: BookingService = Depends(get_booking_service)):
    """
    Cancels a booking on behalf of the chat bot.
    """
    await service.cancel(ref.booking_id)
    logger.info(f"Booking with ID {ref.booking_id} cancelled via chat bot")
    return {"message": f"Booking with ID {ref.booking_id} cancelled successfully."}


@router.post("/payments/initiate", response_model=PaymentInitiation)
async def initiate_payment(payment_cmd: PaymentCommand, payments: PaymentService = Depends(get_payment_service)):
    """
    Starts a simulated payment and returns the QR code to scan.
    """
    return await payments.initiate(payment_cmd)


@router.post("/payments/confirm")
async def confirm_payment(ref: BookingReference, service: BookingService = Depends(get_booking_service)):
    """
    Marks the payment of a booking as completed.
    """
    booking = await service.confirm_payment(ref.booking_id)
    return {"message": f"Payment for booking ID {ref.booking_id} confirmed successfully.", "booking": booking}


@router.post("/testimonials", response_model=TestimonialRead, status_code=201)
async def create_testimonial(testimonial_cmd: TestimonialCommand,
                             service: TestimonialService = Depends(get_testimonial_service)):
    """
    Stores a testimonial. The rating must be between 1 and 5.
    """
    return await service.create(testimonial_cmd)


@router.get("/testimonials", response_model=list[TestimonialRead])
async def list_testimonials(service: TestimonialService = Depends(get_testimonial_service)):
    """
    Lists testimonials, newest first.
    """
    return await service.list_testimonials()


@router.delete("/testimonials/{testimonial_id}")
async def delete_testimonial(testimonial_id: int, service: TestimonialService = Depends(get_testimonial_service)):
    """
    Deletes a testimonial.

    Args:
        testimonial_id (int): The ID of the testimonial to delete.
        service (TestimonialService): The testimonial service.
    """
    await service.delete(testimonial_id)
    return {"message": f"Testimonial with ID {testimonial_id} deleted successfully."}


app = create_app()


def run():
    """
    Console entry point: serves the application with uvicorn.
    """
    settings = get_settings()
    setup_logging(settings.log_level)
    uvicorn.run("spa_booking.main:app", host=settings.host, port=settings.port)
