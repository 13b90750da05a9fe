"""
Database compatibility layer.

JSONType: JSONB on PostgreSQL, JSON on SQLite (dev and tests).
"""

from sqlalchemy import JSON, TypeDecorator
from sqlalchemy.dialects import postgresql


class JSONType(TypeDecorator):
    """Platform-independent JSON type."""

    impl = JSON
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "postgresql":
            return dialect.type_descriptor(postgresql.JSONB)
        return dialect.type_descriptor(JSON)
