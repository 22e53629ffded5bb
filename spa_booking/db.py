"""
This module contains the database setup and session management for the booking service.
"""
import logging
from typing import Any, AsyncGenerator

from alchemical.aio import Alchemical
from fastapi import Request
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)


def create_database(database_url: str) -> Alchemical:
    """
    Creates the database client. Called once at startup; the caller owns its lifetime.

    Args:
        database_url (str): SQLAlchemy async URL, e.g. ``sqlite+aiosqlite:///spa-booking.db``.
    """
    safe_url = make_url(database_url).render_as_string(hide_password=True)
    logger.info(f"Connecting to database {safe_url}")
    return Alchemical(database_url)


async def create_db_and_tables(db: Alchemical):
    """
    Creates the database and tables.
    """
    await db.create_all()


async def close_database(db: Alchemical):
    """
    Releases the connection pool of the database client.
    """
    await db.get_engine().dispose()
    logger.info("Database connections closed")


async def get_db_session(request: Request) -> AsyncGenerator[AsyncSession | Any, Any]:
    """
    Dependency that provides a database session from the application's database client.
    """
    async with request.app.state.db.Session() as session:
        yield session
