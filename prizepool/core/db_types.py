"""
Dialect-aware database types.
Provides PostgreSQL JSONB when available,
falls back to generic JSON for SQLite.

Money columns share one Numeric definition so every table
stores amounts with the same precision.
"""

from sqlalchemy import JSON, Numeric
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.types import TypeDecorator
from sqlalchemy.engine import Dialect


class UniversalJSON(TypeDecorator):
    """
    Uses JSONB for PostgreSQL.
    Uses JSON for SQLite and others.
    """
    impl = JSON
    cache_ok = True

    def load_dialect_impl(self, dialect: Dialect):
        if dialect.name == "postgresql":
            return dialect.type_descriptor(JSONB())
        return dialect.type_descriptor(JSON())


def Money():
    """Numeric(14, 2) returning Decimal."""
    return Numeric(14, 2, asdecimal=True)
