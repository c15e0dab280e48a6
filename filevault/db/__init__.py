"""
Database module for SQLAlchemy session management.
"""
from filevault.db.base import Base, JSONType, UTCDateTime
from filevault.db.session import (
    SessionLocal,
    check_db_connection,
    create_db_engine,
    engine,
    get_db,
    init_db,
)

__all__ = [
    "Base",
    "JSONType",
    "UTCDateTime",
    "create_db_engine",
    "get_db",
    "init_db",
    "check_db_connection",
    "engine",
    "SessionLocal",
]
