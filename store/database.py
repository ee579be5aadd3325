"""
store/database.py -- Shared SQLAlchemy Core schema and engine factory.

Users, RFID cards and the access log live in ONE database because the access
decision joins a card with its owner and must write the log row and the card
timestamp in the same transaction. The repositories that query these tables
(auth/store.py UserStore, access/store.py AccessStore) receive the Engine at
construction instead of opening their own.

Uses SQLAlchemy Core (not ORM) so the dataclasses in auth/models.py and
access/models.py stay the authoritative domain representation. Swapping
SQLite for PostgreSQL is a connection string change.

Timestamps are stored as ISO 8601 UTC strings, which sort lexicographically in
chronological order on every backend.

Layer rule: store/ imports only stdlib + SQLAlchemy.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    ForeignKey,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    create_engine,
    event,
    text,
    true,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

logger = logging.getLogger("accessgate.store")

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

users = Table(
    "users",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(255), nullable=False),
    Column("email", String(255), nullable=False, unique=True),
    Column("password_hash", Text, nullable=False),
    Column("role", String(30), nullable=False, server_default="student"),
    Column("status", String(30), nullable=False, server_default="active"),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

rfid_cards = Table(
    "rfid_cards",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True),
    Column("card_uid", String(64), nullable=False, unique=True),
    Column("is_active", Boolean, nullable=False, server_default=true()),
    Column("registered_at", String(32), nullable=False),
    Column("last_used_at", String(32)),
    Column("notes", Text, nullable=False, server_default=""),
)

# user_id is a weak reference: NULL when the presented card was unknown, and
# set to NULL (not cascaded) when the user is deleted -- audit rows outlive users.
access_logs = Table(
    "access_logs",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True),
    Column("card_uid", String(64), nullable=False, index=True),
    Column("access_granted", Boolean, nullable=False),
    Column("failure_reason", Text),
    Column("access_time", String(32), nullable=False, index=True),
)


# ---------------------------------------------------------------------------
# SQLite connection setup
# ---------------------------------------------------------------------------


def _configure_sqlite(dbapi_conn, connection_record) -> None:
    """Enable WAL journaling and foreign key enforcement on each new connection.

    SQLite PRAGMAs are per-connection and are not inherited from the pool.
    foreign_keys=ON is what makes ON DELETE CASCADE / SET NULL fire; SQLite
    ships with it off.
    """
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def make_engine(db_url: str) -> Engine:
    """Create an Engine for db_url with the per-dialect connection setup applied.

    SQLite requires check_same_thread=False because FastAPI runs sync route
    handlers in a thread pool, so a pooled connection may be used from a
    thread other than the one that opened it.
    """
    connect_args: dict = {}
    if db_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    engine = create_engine(db_url, connect_args=connect_args)
    if db_url.startswith("sqlite"):
        event.listen(engine, "connect", _configure_sqlite)
    return engine


def init_schema(engine: Engine) -> None:
    """Create any missing tables. Idempotent -- safe to call on every startup."""
    metadata.create_all(engine)


def ping(engine: Engine) -> bool:
    """Return True if the database answers a trivial query."""
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except SQLAlchemyError:
        logger.warning("Database ping failed", exc_info=True)
        return False
    return True
