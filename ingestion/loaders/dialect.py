"""
Dialect-aware INSERT construct for ON CONFLICT upserts.

PostgreSQL is the production database; SQLite (aiosqlite) runs the test
suite. Both support ``INSERT ... ON CONFLICT`` and ``RETURNING``.
"""

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from core.exceptions import ConfigurationError


def dialect_name(session: AsyncSession) -> str:
    return session.get_bind().dialect.name


def upsert_insert(session: AsyncSession, model):
    """Return the dialect's insert() for model, supporting on_conflict_do_*"""
    name = dialect_name(session)
    if name == "postgresql":
        return postgresql.insert(model)
    if name == "sqlite":
        return sqlite.insert(model)
    raise ConfigurationError(
        f"Unsupported database dialect: {name}",
        context={"dialect": name}
    )
