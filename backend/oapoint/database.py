"""
Engine, session factory and the declarative base.

DATABASE_URL selects the backend: PostgreSQL in deployment (schema managed by
Alembic), SQLite for local runs and tests (tables created at startup).
"""

import os
from contextlib import contextmanager

from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker, DeclarativeBase

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./oa_point.db")


def engine_options(url: str) -> dict:
    """Driver-specific create_engine() keyword arguments."""
    options = {"echo": os.getenv("DB_ECHO", "").lower() in ("1", "true")}
    if url.startswith("postgresql"):
        options.update({
            "pool_size": int(os.getenv("DB_POOL_SIZE", "10")),
            "max_overflow": int(os.getenv("DB_MAX_OVERFLOW", "20")),
            "pool_pre_ping": True,
        })
    elif url.startswith("sqlite"):
        # Request handlers run in a threadpool
        options["connect_args"] = {"check_same_thread": False}
    return options


def _set_sqlite_pragma(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def enable_sqlite_pragmas(target_engine):
    """WAL mode and foreign key enforcement, so ON DELETE CASCADE works."""
    event.listen(target_engine, "connect", _set_sqlite_pragma)


engine = create_engine(DATABASE_URL, **engine_options(DATABASE_URL))
if DATABASE_URL.startswith("sqlite"):
    enable_sqlite_pragmas(engine)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


class Base(DeclarativeBase):
    pass


def get_db():
    """FastAPI dependency: one session per request, always closed."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def session_scope():
    """
    Session for scripts outside a request.

    Commits on success, rolls back and re-raises on error.
    """
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def create_tables():
    """Create all tables from the models. PostgreSQL uses Alembic instead."""
    Base.metadata.create_all(bind=engine)
