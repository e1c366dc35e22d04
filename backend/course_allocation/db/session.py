from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from course_allocation.core.config import get_settings
from course_allocation.core.exceptions import TransactionFailureError

logger = logging.getLogger(__name__)


def enable_sqlite_savepoints(target: Engine) -> None:
    """Let SQLAlchemy own BEGIN on pysqlite so SAVEPOINT/ROLLBACK TO behave."""

    @event.listens_for(target, "connect")
    def _disable_driver_transactions(dbapi_connection, connection_record) -> None:
        dbapi_connection.isolation_level = None

    @event.listens_for(target, "begin")
    def _emit_begin(connection) -> None:
        connection.exec_driver_sql("BEGIN")


def build_engine(database_url: str) -> Engine:
    if database_url.startswith("sqlite"):
        built = create_engine(database_url, connect_args={"check_same_thread": False})
        enable_sqlite_savepoints(built)
        return built
    return create_engine(database_url, pool_pre_ping=True)


engine = build_engine(get_settings().database_url)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@contextmanager
def atomic(db: Session) -> Iterator[Session]:
    """Commit the session's current transaction on success, roll it back on any failure.

    Storage faults surface as TransactionFailureError; everything else is re-raised as is.
    """
    try:
        yield db
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Rolled back allocation transaction")
        raise TransactionFailureError(f"Transaction could not be committed: {exc.__class__.__name__}") from exc
    except BaseException:
        db.rollback()
        raise
