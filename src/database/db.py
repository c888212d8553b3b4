"""Engine and session wiring for the market data table."""

from collections.abc import Iterator

from sqlalchemy import Engine, create_engine, event
from sqlalchemy.orm import Session, sessionmaker

from src.database.models import Base
from src.utils.config import config

# Scheduler runs and request handlers may write at the same moment
SQLITE_BUSY_TIMEOUT_MS = 5000


def build_engine(database_url: str, echo: bool = False) -> Engine:
    """
    Create an engine for ``database_url``.

    SQLite connections may be shared across threads and wait on a locked
    database instead of failing at once.
    """
    is_sqlite = database_url.startswith("sqlite")
    built = create_engine(
        database_url,
        echo=echo,
        connect_args={"check_same_thread": False} if is_sqlite else {},
    )

    if is_sqlite:

        @event.listens_for(built, "connect")
        def set_sqlite_pragma(dbapi_conn, connection_record):
            cursor = dbapi_conn.cursor()
            cursor.execute(f"PRAGMA busy_timeout={SQLITE_BUSY_TIMEOUT_MS}")
            cursor.close()

    return built


def session_factory(bind: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=bind)


engine = build_engine(config.database.database_url, echo=config.database.echo)
SessionLocal = session_factory(engine)


def init_db(bind: Engine | None = None) -> None:
    """Create the market data table if it does not exist."""
    Base.metadata.create_all(bind=bind or engine)


def get_db() -> Iterator[Session]:
    """Request-scoped session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
