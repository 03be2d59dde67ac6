# storefront/database.py
import logging
import time
from contextlib import contextmanager
from typing import Callable, TypeVar

from sqlalchemy import event
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.engine import Engine
from sqlmodel import SQLModel, create_engine, Session

from storefront.core.config import get_settings
from storefront.core.errors import TransactionError

logger = logging.getLogger(__name__)

settings = get_settings()

T = TypeVar("T")


# ---------------------------------------------------------
# Engine construction
#
# SQLite (default, embedded single-writer store):
# - every transaction starts with BEGIN IMMEDIATE, so the writer lock is
#   taken up front and concurrent units of work queue in the store
# - busy timeout bounds how long a request waits for that lock
# - check_same_thread=False: sessions are handed across the threadpool
#
# Anything else (e.g. Postgres) keeps a small pre-pinged pool; row locks
# taken by the conditional UPDATEs provide the same guarantees there.
# ---------------------------------------------------------


def _is_sqlite(url: str) -> bool:
    return url.startswith("sqlite")


def build_engine(url: str | None = None, echo: bool = False) -> Engine:
    """
    Create an engine for `url` (defaults to settings.DATABASE_URL).

    Tests call this with a temporary SQLite file so they exercise the same
    transaction discipline as production.
    """
    db_url = url or settings.DATABASE_URL

    if not _is_sqlite(db_url):
        return create_engine(
            db_url,
            echo=echo,
            pool_pre_ping=True,
            pool_size=5,
            max_overflow=0,
        )

    new_engine = create_engine(
        db_url,
        echo=echo,
        connect_args={
            "check_same_thread": False,
            "timeout": settings.DB_BUSY_TIMEOUT_SECONDS,
        },
    )

    @event.listens_for(new_engine, "connect")
    def _sqlite_on_connect(dbapi_connection, connection_record):
        # Hand transaction control to SQLAlchemy instead of pysqlite
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(new_engine, "begin")
    def _sqlite_on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    return new_engine


engine = build_engine()


def create_db_and_tables(bind: Engine | None = None) -> None:
    """
    Create all tables defined in SQLModel metadata if they do not exist.

    This is called once on application startup.
    """
    # Import models so SQLModel metadata is populated before create_all()
    from storefront.models import cart, coupon, order, product, user  # noqa: F401

    SQLModel.metadata.create_all(bind or engine)


def get_session():
    """
    FastAPI dependency that yields a SQLModel Session.

    expire_on_commit=False: committed rows stay readable for the response
    without opening another (writer-locking) transaction.

    Usage:

        from fastapi import Depends

        @router.post("/example")
        def example_endpoint(session: Session = Depends(get_session)):
            ...
    """
    with Session(engine, expire_on_commit=False) as session:
        yield session


def retry_on_transaction_error(
    operation: Callable[[], T],
    attempts: int | None = None,
    backoff: float | None = None,
) -> T:
    """
    Run `operation` and re-run it when the store reports a TransactionError.

    Only store-level failures are retried. Business errors (stock, coupon,
    validation) propagate on the first attempt. The operation is expected
    to have rolled back its own unit of work before raising.
    """
    total = max(1, attempts if attempts is not None else settings.TX_RETRY_ATTEMPTS)
    delay = backoff if backoff is not None else settings.TX_RETRY_BACKOFF_SECONDS

    for attempt in range(1, total + 1):
        try:
            return operation()
        except TransactionError:
            if attempt == total:
                raise
            logger.warning(
                "Transaction failed (attempt %s/%s), retrying", attempt, total
            )
            time.sleep(delay * attempt)

    raise AssertionError("unreachable")


@contextmanager
def unit_of_work(session: Session):
    """
    Commit on success, roll back explicitly on any error.

    Store failures (locked, busy, connection lost, constraint errors raised
    at flush/commit) surface as TransactionError; domain errors propagate
    unchanged after the rollback.
    """
    try:
        yield session
        session.commit()
    except SQLAlchemyError as exc:
        session.rollback()
        logger.error("Transaction rolled back after store error: %s", exc)
        raise TransactionError("The store could not complete the transaction") from exc
    except Exception:
        session.rollback()
        raise
