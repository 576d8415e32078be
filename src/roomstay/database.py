"""SQLAlchemy engine and session setup."""

from __future__ import annotations

from sqlalchemy import Engine, create_engine, event
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from roomstay.config import get_database_url


class Base(DeclarativeBase):
    pass


def enable_immediate_transactions(engine: Engine) -> None:
    """Make every SQLite transaction take the write lock up front.

    pysqlite defers BEGIN until the first write, which lets two requests both
    read "no conflicting booking" before either inserts. BEGIN IMMEDIATE
    serializes them instead.
    """

    @event.listens_for(engine, "connect")
    def _disable_pysqlite_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def build_engine(url: str) -> Engine:
    if url.startswith("sqlite"):
        engine = create_engine(
            url,
            echo=False,
            connect_args={"check_same_thread": False},  # SQLite needs this for multi-thread
        )
        enable_immediate_transactions(engine)
        return engine
    return create_engine(url, echo=False, pool_pre_ping=True)


engine = build_engine(get_database_url())

SessionLocal = sessionmaker(bind=engine, expire_on_commit=False)


def get_session() -> Session:
    """Create a new database session."""
    return SessionLocal()


def init_db() -> None:
    """Create all tables. Import models first so they register with Base."""
    import roomstay.models.booking  # noqa: F401
    import roomstay.models.payment  # noqa: F401
    import roomstay.models.property  # noqa: F401
    import roomstay.models.rate  # noqa: F401

    Base.metadata.create_all(bind=engine)
