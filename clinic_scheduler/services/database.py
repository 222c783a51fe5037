"""Database helpers backed by SQLAlchemy."""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from datetime import datetime
from typing import Iterator

from clinic_scheduler.extensions import db as sa_db
from clinic_scheduler.services.errors import NotFound, StorageError


def db() -> sqlite3.Connection:
    """Return a raw sqlite3 connection with PRAGMAs applied."""

    return sa_db.raw_connection()


@contextmanager
def session_scope():
    """Provide a transactional scope for ORM usage."""

    session = sa_db.session()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


@contextmanager
def write_transaction(conn: sqlite3.Connection) -> Iterator[sqlite3.Connection]:
    """Run a check-then-write sequence under SQLite's write lock.

    ``BEGIN IMMEDIATE`` takes the RESERVED lock up front, so a second writer
    waits (up to ``busy_timeout``) until this transaction commits and then
    reads the committed rows.
    """

    try:
        conn.execute("BEGIN IMMEDIATE")
    except sqlite3.Error as exc:
        raise StorageError("begin_failed") from exc
    try:
        yield conn
        conn.commit()
    except sqlite3.Error as exc:
        conn.rollback()
        raise StorageError(str(exc)) from exc
    except Exception:
        conn.rollback()
        raise


def fetch_one(conn: sqlite3.Connection, sql: str, params: tuple | list = ()) -> sqlite3.Row | None:
    try:
        return conn.execute(sql, params).fetchone()
    except sqlite3.Error as exc:
        raise StorageError(str(exc)) from exc


def fetch_all(conn: sqlite3.Connection, sql: str, params: tuple | list = ()) -> list[sqlite3.Row]:
    try:
        return conn.execute(sql, params).fetchall()
    except sqlite3.Error as exc:
        raise StorageError(str(exc)) from exc


def require_row(conn: sqlite3.Connection, table: str, entity_id: str | None, entity: str) -> sqlite3.Row:
    """Fetch ``table`` row by id or raise :class:`NotFound`."""

    row = fetch_one(conn, f"SELECT * FROM {table} WHERE id=?", (entity_id,)) if entity_id else None
    if row is None:
        raise NotFound(entity, entity_id)
    return row


def now_iso() -> str:
    return datetime.now().strftime("%Y-%m-%dT%H:%M:%S")
