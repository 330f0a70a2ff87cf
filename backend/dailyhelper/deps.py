"""Request-scoped dependencies.

Settings and the Database live on ``app.state`` (set by the app factory);
these helpers hand them to routes so nothing reaches for a module global.
"""
from typing import Iterator

from fastapi import Request
from sqlmodel import Session

from .models import Database
from .settings import Settings


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_database(request: Request) -> Database:
    return request.app.state.database


def get_db_session(request: Request) -> Iterator[Session]:
    """One session per request, closed when the response is done."""
    with get_database(request).session() as session:
        yield session
