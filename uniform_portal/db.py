from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

import structlog
from sqlalchemy import create_engine, text
from sqlalchemy.exc import OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.orm import Session, sessionmaker

from uniform_portal.config import settings
from uniform_portal.errors import StoreTimeoutError

logger = structlog.get_logger()

engine = create_engine(
    settings.database_url_normalized,
    pool_pre_ping=True,
    pool_timeout=settings.store_timeout_seconds,
)

SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)

# SQLSTATE 57014 query_canceled, raised when statement_timeout fires.
_QUERY_CANCELED = '57014'


def get_db() -> Iterator[Session]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def _is_statement_timeout(exc: OperationalError) -> bool:
    return getattr(exc.orig, 'sqlstate', None) == _QUERY_CANCELED


@contextmanager
def store_deadline(db: Session, timeout_seconds: float | None = None) -> Iterator[Session]:
    """Run store calls under a deadline and report expiry as StoreTimeoutError.

    On PostgreSQL the deadline is applied as a transaction-local ``statement_timeout``
    and lasts until the surrounding transaction ends. Other dialects only get
    the pool checkout timeout.
    """
    timeout = settings.store_timeout_seconds if timeout_seconds is None else timeout_seconds
    try:
        if timeout and db.get_bind().dialect.name == 'postgresql':
            db.execute(text("SELECT set_config('statement_timeout', :ms, true)"), {'ms': str(int(timeout * 1000))})
        yield db
    except PoolTimeoutError as exc:
        logger.warning('Store connection checkout timed out', timeout_seconds=timeout)
        raise StoreTimeoutError(f'Store connection not available within {timeout}s') from exc
    except OperationalError as exc:
        if not _is_statement_timeout(exc):
            raise
        logger.warning('Store statement timed out', timeout_seconds=timeout)
        raise StoreTimeoutError(f'Store call exceeded {timeout}s') from exc
