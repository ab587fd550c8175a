"""Database module for SQLAlchemy models and session management."""

from faxbridge.database.base import Base, DatabaseClient, async_session_maker, db_client, engine, get_async_session
from faxbridge.database.models import AuditEventRecord, ConversationContextRecord, FaxUser

__all__ = [
    "Base",
    "DatabaseClient",
    "async_session_maker",
    "db_client",
    "engine",
    "get_async_session",
    "AuditEventRecord",
    "ConversationContextRecord",
    "FaxUser",
]
