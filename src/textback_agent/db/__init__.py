"""Database module for the Textback Agent.

Provides:
- SQLAlchemy ORM models
- Async session management
- Repository pattern for data access
"""
from textback_agent.db.base import Base, TimestampMixin, UTCDateTime, UUIDMixin, UUIDType
from textback_agent.db.session import (
    close_db,
    create_test_engine,
    get_db_context,
    get_engine,
    get_session_factory,
    init_db,
    make_session_factory,
)

__all__ = [
    "Base",
    "TimestampMixin",
    "UTCDateTime",
    "UUIDMixin",
    "UUIDType",
    "close_db",
    "create_test_engine",
    "get_db_context",
    "get_engine",
    "get_session_factory",
    "init_db",
    "make_session_factory",
]
