"""
Database engine and session setup.

Booking writes must be serialized. On SQLite every transaction is opened
with ``BEGIN IMMEDIATE`` so a second writer waits for the first to commit;
on PostgreSQL the repository takes a transaction-scoped advisory lock.
"""

import logging

import pendulum
from sqlalchemy import DateTime, create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool
from sqlalchemy.types import TypeDecorator

logger = logging.getLogger(__name__)

SQLITE_BUSY_TIMEOUT_SECONDS = 30

Base = declarative_base()


class UTCDateTime(TypeDecorator):
    """
    Stores aware datetimes as naive UTC and returns pendulum UTC DateTimes.

    Naive values are refused on the way in; the store never guesses a zone.
    """

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None or value.utcoffset() is None:
            raise ValueError(f"Refusing to store naive datetime {value!r}")
        utc = pendulum.instance(value).in_timezone("UTC")
        return utc.naive()

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is not None:
            return pendulum.instance(value).in_timezone("UTC")
        return pendulum.instance(value, tz="UTC")


def _is_sqlite(database_url: str) -> bool:
    return database_url.startswith("sqlite")


def _is_memory_sqlite(database_url: str) -> bool:
    return database_url in ("sqlite://", "sqlite:///:memory:") or ":memory:" in database_url


def create_db_engine(database_url: str, echo: bool = False) -> Engine:
    """
    Create an engine for ``database_url`` with booking-safe locking.

    Args:
        database_url: SQLAlchemy URL (sqlite or postgresql)
        echo: Log all SQL statements

    Returns:
        Configured Engine
    """
    if _is_sqlite(database_url):
        kwargs = {
            "connect_args": {
                "check_same_thread": False,
                "timeout": SQLITE_BUSY_TIMEOUT_SECONDS,
            },
        }
        if _is_memory_sqlite(database_url):
            kwargs["poolclass"] = StaticPool
        engine = create_engine(database_url, echo=echo, **kwargs)
        _install_sqlite_locking(engine)
    else:
        engine = create_engine(
            database_url,
            echo=echo,
            pool_pre_ping=True,
            pool_recycle=300,
            pool_timeout=30,
        )

    logger.debug("Database engine created for %s", engine.url.render_as_string(hide_password=True))
    return engine


def _install_sqlite_locking(engine: Engine) -> None:
    @event.listens_for(engine, "connect")
    def on_connect(dbapi_connection, _connection_record):
        # Disable pysqlite's implicit BEGIN so the begin hook below owns it.
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def create_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


def init_db(engine: Engine) -> None:
    """Create all tables that do not exist yet."""
    from . import tables  # noqa: F401  (registers the mappings)

    Base.metadata.create_all(bind=engine)
