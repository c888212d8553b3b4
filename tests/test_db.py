"""Tests for engine construction."""

import os
import tempfile

from sqlalchemy import inspect, text

from src.database.db import SQLITE_BUSY_TIMEOUT_MS, build_engine, init_db, session_factory


def test_sqlite_connections_wait_on_locks():
    engine = build_engine("sqlite://")

    with engine.connect() as conn:
        timeout = conn.execute(text("PRAGMA busy_timeout")).scalar()

    assert timeout == SQLITE_BUSY_TIMEOUT_MS
    engine.dispose()


def test_init_db_creates_market_table():
    fd, db_path = tempfile.mkstemp(suffix=".db")
    os.close(fd)
    engine = build_engine(f"sqlite:///{db_path}")
    try:
        init_db(engine)

        assert "market_data" in inspect(engine).get_table_names()
    finally:
        engine.dispose()
        os.unlink(db_path)


def test_session_factory_binds_engine(test_db):
    session = session_factory(test_db)()
    try:
        assert session.get_bind() is test_db
    finally:
        session.close()
