"""
Database engine and session management
PostgreSQL in staging/prod, SQLite accepted for local development and tests
"""
import logging
import threading
from typing import Generator

import psycopg2
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from ..config import config

logger = logging.getLogger(__name__)


def _build_engine(database_url: str):
    """Create the engine with pool settings appropriate for the backend"""
    if database_url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if ":memory:" in database_url or database_url in ("sqlite://", "sqlite:///"):
            kwargs["poolclass"] = StaticPool
        return create_engine(database_url, **kwargs)

    return create_engine(
        database_url,
        pool_pre_ping=True,  # Detect dead connections before use
        pool_size=config.DB_POOL_SIZE,
        max_overflow=config.DB_MAX_OVERFLOW,
        pool_recycle=config.DB_POOL_RECYCLE,
        echo=False,
        connect_args={
            "connect_timeout": 10,
            "application_name": "review_entitlements",
        },
    )


engine = _build_engine(config.DATABASE_URL)

# Connection invalidation statistics
_connection_invalidation_count = {"total": 0, "driver_errors": 0}
_invalidation_lock = threading.Lock()


@event.listens_for(engine, "invalidate")
def receive_invalidate(dbapi_conn, connection_record, exception):
    """Track invalidated connections"""
    is_driver_error = isinstance(exception, (psycopg2.OperationalError, psycopg2.InterfaceError))
    with _invalidation_lock:
        _connection_invalidation_count["total"] += 1
        if is_driver_error:
            _connection_invalidation_count["driver_errors"] += 1
    logger.warning(f"[POOL] Connection invalidated: {exception}")


def get_invalidation_stats() -> dict:
    """Snapshot of connection invalidation counters"""
    with _invalidation_lock:
        return dict(_connection_invalidation_count)


logger.info(f"Database engine configured for dialect: {engine.dialect.name}")

# Create session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db() -> Generator:
    """
    Get database session
    Use as FastAPI dependency: db: Session = Depends(get_db)
    """
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception as e:
        db.rollback()
        logger.error(f"Database session error: {e}", exc_info=True)
        raise
    finally:
        db.close()
