"""Database connection and session management."""

from typing import Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from marketplace.config import settings

# Execution option read by the SQLite "begin" listener
SQLITE_BEGIN_OPTION = "sqlite_begin"


def create_db_engine(database_url: str, echo: bool = False) -> Engine:
    """Create an engine whose write transactions serialize.

    SQLite ignores SELECT ... FOR UPDATE. Reads open a plain deferred
    transaction; write paths go through begin_write(), which opens the
    transaction with BEGIN IMMEDIATE and so takes the write lock up front.
    File databases run in WAL mode so open readers never block a writer's
    commit. Other backends rely on the row locks taken by the services.

    Args:
        database_url: SQLAlchemy database URL
        echo: Log SQL statements

    Returns:
        Configured Engine
    """
    if not database_url.startswith("sqlite"):
        return create_engine(database_url, echo=echo, pool_pre_ping=True)

    in_memory = ":memory:" in database_url or database_url in ("sqlite://", "sqlite:///")
    if in_memory:
        engine = create_engine(
            database_url,
            echo=echo,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    else:
        engine = create_engine(
            database_url,
            echo=echo,
            connect_args={"check_same_thread": False, "timeout": 30},
        )

    @event.listens_for(engine, "connect")
    def _configure_connection(dbapi_connection, connection_record):
        # Let SQLAlchemy emit BEGIN itself
        dbapi_connection.isolation_level = None
        if not in_memory:
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.close()

    @event.listens_for(engine, "begin")
    def _begin(conn):
        mode = conn.get_execution_options().get(SQLITE_BEGIN_OPTION)
        conn.exec_driver_sql(f"BEGIN {mode}" if mode else "BEGIN")

    return engine


def begin_write(db: Session) -> None:
    """Start the session's next transaction as a write transaction.

    A transaction already open on the session is committed first unless it
    holds unflushed changes, in which case it is left as is. On SQLite the
    new transaction is opened with BEGIN IMMEDIATE.
    """
    if db.in_transaction():
        if db.new or db.dirty or db.deleted:
            return
        db.commit()
    db.connection(execution_options={SQLITE_BEGIN_OPTION: "IMMEDIATE"})


engine = create_db_engine(settings.database_url, echo=settings.database_echo)

# Create session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db() -> Generator[Session, None, None]:
    """Get database session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


__all__ = [
    "begin_write",
    "create_db_engine",
    "engine",
    "SessionLocal",
    "get_db",
]
