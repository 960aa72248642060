import logging
import os
import time
from contextlib import contextmanager
from typing import Callable, Iterator, TypeVar

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from .config import DATABASE_URL, TX_RETRY_ATTEMPTS
from .domain.errors import InternalError

logger = logging.getLogger(__name__)

# Get environment-specific pool settings
POOL_SIZE = int(os.getenv("DB_POOL_SIZE", "20"))
MAX_OVERFLOW = int(os.getenv("DB_MAX_OVERFLOW", "30"))
POOL_TIMEOUT = int(os.getenv("DB_POOL_TIMEOUT", "30"))
POOL_RECYCLE = int(os.getenv("DB_POOL_RECYCLE", "300"))
ENABLE_QUERY_LOGGING = os.getenv("DB_LOG_SLOW_QUERIES", "true").lower() == "true"
SLOW_QUERY_THRESHOLD = float(os.getenv("DB_SLOW_QUERY_THRESHOLD", "1.0"))

T = TypeVar("T")


def _is_sqlite(url: str) -> bool:
    return url.startswith("sqlite")


def _enable_sqlite_foreign_keys(engine: Engine) -> None:
    """SQLite ignores FOREIGN KEY clauses unless the pragma is set per connection"""

    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_connection, _connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


def _enable_slow_query_logging(engine: Engine) -> None:
    @event.listens_for(engine, "before_cursor_execute")
    def before_cursor_execute(conn, _cursor, statement, _parameters, context, _executemany):
        conn.info.setdefault("query_start_time", []).append(time.time())

    @event.listens_for(engine, "after_cursor_execute")
    def after_cursor_execute(conn, _cursor, statement, _parameters, context, _executemany):
        total = time.time() - conn.info["query_start_time"].pop(-1)
        if total > SLOW_QUERY_THRESHOLD:
            logger.warning(f"🐌 Slow query ({total:.2f}s): {statement[:200]}...")


def build_engine(url: str) -> Engine:
    """Create an engine with pooling suited to the backend behind ``url``"""
    if _is_sqlite(url):
        # Pool arguments are not accepted by the SQLite pools; sessions move between
        # FastAPI's worker threads so the same-thread check must be off.
        engine = create_engine(url, connect_args={"check_same_thread": False}, echo=False)
        _enable_sqlite_foreign_keys(engine)
    else:
        engine = create_engine(
            url,
            pool_pre_ping=True,  # Test connections before using
            pool_recycle=POOL_RECYCLE,
            pool_size=POOL_SIZE,
            max_overflow=MAX_OVERFLOW,
            pool_timeout=POOL_TIMEOUT,
            echo=False,  # Don't log all SQL (use slow query logging instead)
        )
        logger.info(
            f"📊 Connection pool: size={POOL_SIZE}, max_overflow={MAX_OVERFLOW}, timeout={POOL_TIMEOUT}s"
        )

    if ENABLE_QUERY_LOGGING:
        _enable_slow_query_logging(engine)

    return engine


try:
    engine = build_engine(DATABASE_URL)
    logger.info("✅ Database engine created successfully")
except Exception as e:
    logger.error(f"❌ Failed to create database engine: {e}")
    raise

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def unit_of_work(db: Session) -> Iterator[Session]:
    """
    Run a block as one transaction on ``db``.

    Commits when the block finishes and rolls back on any exception, so
    callers never observe a partially applied multi-row change.
    """
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise


def run_in_transaction(db: Session, work: Callable[[], T], attempts: int = TX_RETRY_ATTEMPTS) -> T:
    """
    Run ``work`` inside ``unit_of_work`` and return its result.

    Storage conflicts (serialization failures, deadlocks, a locked SQLite
    file) roll back and run ``work`` again, up to ``attempts`` times in
    total. Anything else, domain errors included, propagates on the first
    failure.
    """
    for attempt in range(1, attempts + 1):
        try:
            with unit_of_work(db):
                return work()
        except OperationalError as e:
            if attempt >= attempts:
                logger.error(f"❌ Transaction failed after {attempt} attempt(s): {e}")
                raise InternalError("Storage conflict, please retry") from e
            logger.warning(f"⚠️ Transaction conflict (attempt {attempt}/{attempts}), retrying: {e}")
    raise InternalError("Transaction was not attempted")
