"""
Database session management. SQLAlchemy 2.x style.
"""

from collections.abc import Generator

from sqlalchemy import Engine, create_engine, event, text
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker
from sqlalchemy.pool import StaticPool

from impacttrace.config import get_settings


def build_engine(database_url: str, *, echo: bool = False, connect_timeout: int = 10) -> Engine:
    """Create an engine for database_url.

    SQLite gets foreign keys switched on (junction cascades depend on them) and
    explicit BEGIN so savepoints behave; in-memory SQLite shares one connection
    so every session sees the same data.
    """
    if database_url.startswith("sqlite"):
        kwargs: dict = {"connect_args": {"check_same_thread": False}}
        if ":memory:" in database_url or database_url.rstrip("/") in ("sqlite:", "sqlite+pysqlite:"):
            kwargs["poolclass"] = StaticPool
        sqlite_engine = create_engine(database_url, echo=echo, **kwargs)

        @event.listens_for(sqlite_engine, "connect")
        def _set_sqlite_pragmas(dbapi_conn, connection_record):
            # hand transaction control to SQLAlchemy; pysqlite's implicit BEGIN breaks SAVEPOINT
            dbapi_conn.isolation_level = None
            cursor = dbapi_conn.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        @event.listens_for(sqlite_engine, "begin")
        def _begin(conn):
            conn.exec_driver_sql("BEGIN")

        return sqlite_engine

    return create_engine(
        database_url,
        pool_pre_ping=True,
        pool_size=5,
        max_overflow=10,
        echo=echo,
        connect_args={
            "connect_timeout": connect_timeout,
            "options": "-c timezone=UTC",
        },
    )


settings = get_settings()
engine = build_engine(
    settings.database_url,
    echo=settings.debug,
    connect_timeout=settings.db_connect_timeout,
)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


class Base(DeclarativeBase):
    """Declarative base for SQLAlchemy models."""


def check_db_connection() -> None:
    """
    Verify database connectivity. Raises if unreachable.
    Call before running scripts against the database.
    """
    with engine.connect() as conn:
        conn.execute(text("SELECT 1"))


def get_db() -> Generator[Session, None, None]:
    """Yield a database session and close it afterwards."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
