from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy import event
from sqlalchemy.engine import Engine
from sqlmodel import Session, SQLModel, create_engine

from tasktrack.core.config import settings
from tasktrack.core.logging import get_logger

logger = get_logger(__name__)


def _serialize_sqlite_writers(engine: Engine) -> None:
    """Take SQLite's write lock when a transaction begins.

    pysqlite defers BEGIN until the first write and SQLite ignores
    ``SELECT ... FOR UPDATE``, so precondition reads would otherwise run
    outside the transaction that acts on them.
    """

    @event.listens_for(engine, "connect")
    def _disable_pysqlite_begin(dbapi_connection, connection_record) -> None:
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _begin_immediate(conn) -> None:
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def _build_engine(url: str) -> Engine:
    connect_args: dict[str, object] = {}
    is_sqlite = url.startswith("sqlite")
    if is_sqlite:
        connect_args["check_same_thread"] = False
    engine = create_engine(url, echo=settings.db_echo, connect_args=connect_args)
    if is_sqlite:
        _serialize_sqlite_writers(engine)
    return engine


engine = _build_engine(settings.database_url)


def init_db(bind: Engine | None = None) -> None:
    # Importing the models registers every table on SQLModel.metadata.
    import tasktrack.models  # noqa: F401

    SQLModel.metadata.create_all(bind or engine)


def get_session() -> Iterator[Session]:
    with Session(engine, expire_on_commit=False) as session:
        yield session


@contextmanager
def atomic(session: Session) -> Iterator[Session]:
    """Run one logical operation as a single transaction.

    Every read used for a precondition and every write acting on it must happen
    inside the block. Any exception rolls the whole transaction back.
    """
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
