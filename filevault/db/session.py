"""
Engine and session factory for the lifecycle engine.

Workers open one session per tick through ``get_db()``; every engine
operation commits its own short transaction, so sessions never need to be
held across ticks.
"""
import logging
from typing import Any, Dict, Generator

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from filevault.core.config import settings

logger = logging.getLogger(__name__)


def _engine_options(url: str) -> Dict[str, Any]:
    if url.startswith("sqlite"):
        # Workers may hand a session to another thread between ticks
        return {"connect_args": {"check_same_thread": False}}
    return {
        "pool_pre_ping": True,
        "pool_size": 10,
        "max_overflow": 20,
        "pool_recycle": 3600,
    }


def create_db_engine(url: str, echo: bool = False) -> Engine:
    """Engine with pool settings suited to the backend behind ``url``."""
    return create_engine(url, echo=echo, **_engine_options(url))


engine = create_db_engine(settings.DATABASE_URL)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db() -> Generator[Session, None, None]:
    """
    Yield a session and close it afterwards, rolling back on error.

    Usage:
        for db in get_db():
            TierMigrationWorker(db, storage).tick()
    """
    db = SessionLocal()
    try:
        yield db
    except Exception as e:
        logger.error(f"Session aborted, rolling back: {e}")
        db.rollback()
        raise
    finally:
        db.close()


def init_db() -> None:
    """
    Create the files and verification_tokens tables if missing.

    Development and test helper; production schemas are managed by migrations.
    """
    from filevault.models import Base

    Base.metadata.create_all(bind=engine)
    logger.info(f"Database schema ready ({', '.join(sorted(Base.metadata.tables))})")


def check_db_connection() -> bool:
    """
    Returns:
        True if a trivial query succeeds
    """
    db = SessionLocal()
    try:
        db.execute(text("SELECT 1"))
        return True
    except SQLAlchemyError as e:
        logger.error(f"Database connection check failed: {e}")
        return False
    finally:
        db.close()
