"""Database models and session setup.

SQLModel tables for the identity store and the two owned resources, plus a
small :class:`Database` wrapper built from ``DbSettings``. Tests point it at
a throwaway SQLite file; production can use any SQLAlchemy URL.

Timestamps are stored as UTC ISO-8601 strings so a row reads back exactly as
it was written regardless of the backend's datetime handling.
"""
from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator, Optional

from loguru import logger
from sqlalchemy import event, text
from sqlalchemy.engine import make_url
from sqlmodel import Field, Session, SQLModel, create_engine  # type: ignore[import-untyped]

from .settings import DbSettings


def utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class User(SQLModel, table=True):  # type: ignore[misc]
    id: Optional[int] = Field(default=None, primary_key=True)
    username: str
    normalized_username: str = Field(index=True, unique=True)
    password_hash: str
    role: str = Field(default="user", description="user|admin")
    created_at: str = Field(default_factory=utcnow_iso)


class OwnedEntity(SQLModel):
    """Columns shared by every row that belongs to a user."""

    owner_id: int = Field(foreign_key="user.id", index=True)
    created_at: str = Field(default_factory=utcnow_iso, index=True)
    updated_at: str = Field(default_factory=utcnow_iso)


class Note(OwnedEntity, table=True):  # type: ignore[misc]
    id: Optional[int] = Field(default=None, primary_key=True)
    title: str
    body: str = ""


class ToDoTask(OwnedEntity, table=True):  # type: ignore[misc]
    id: Optional[int] = Field(default=None, primary_key=True)
    description: str
    is_completed: bool = Field(default=False, index=True)
    due_date: Optional[str] = Field(default=None, index=True)  # UTC ISO-8601


def create_engine_from_settings(db: DbSettings):
    """Create a SQLModel/SQLAlchemy engine for the configured connection string.

    SQLite gets check_same_thread disabled (requests run on a thread pool) and
    foreign keys switched on so owner references are enforced.
    """
    url = db.connection_string
    is_sqlite = url.startswith("sqlite")
    if is_sqlite:
        database = make_url(url).database
        if database and database != ":memory:":
            Path(database).parent.mkdir(parents=True, exist_ok=True)
    connect_args = {"check_same_thread": False} if is_sqlite else {}
    engine = create_engine(url, echo=db.echo, connect_args=connect_args)

    if is_sqlite:
        @event.listens_for(engine, "connect")
        def _enable_fk(dbapi_connection, _record):  # pragma: no cover - driver hook
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return engine


class Database:
    """Engine owner; one per application instance."""

    def __init__(self, settings: DbSettings):
        self.settings = settings
        self.engine = create_engine_from_settings(settings)

    def create_all(self) -> None:  # idempotent
        SQLModel.metadata.create_all(self.engine)
        logger.debug("schema ensured on {}", self.engine.url.render_as_string(hide_password=True))

    @contextmanager
    def session(self) -> Iterator[Session]:
        with Session(self.engine) as session:
            yield session

    def ping(self) -> None:
        with self.session() as session:
            session.execute(text("SELECT 1"))

    def dispose(self) -> None:
        self.engine.dispose()


__all__ = [
    "User", "OwnedEntity", "Note", "ToDoTask",
    "Database", "create_engine_from_settings", "utcnow_iso",
]
