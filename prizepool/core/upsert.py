"""
Dialect-aware INSERT for ON CONFLICT upserts.
SQLite in development and tests, PostgreSQL in production.
"""
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession


def dialect_insert(db: AsyncSession, model):
    """insert(model) supporting on_conflict_do_nothing / on_conflict_do_update."""
    if db.get_bind().dialect.name == "sqlite":
        return sqlite.insert(model)
    return postgresql.insert(model)
