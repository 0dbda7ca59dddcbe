"""
Dialect-aware INSERT constructs.

PostgreSQL and SQLite both support ``ON CONFLICT`` through their own
``insert()`` variants; this picks the one matching the session's bind.
"""

from sqlalchemy import Table
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session


def dialect_insert(db: Session, table: Table):
    """
    Return an insert() for ``table`` that supports on_conflict_do_update /
    on_conflict_do_nothing on the current dialect.

    Raises:
        NotImplementedError: For dialects without ON CONFLICT support.
    """
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        return pg_insert(table)
    if dialect == "sqlite":
        return sqlite_insert(table)
    raise NotImplementedError(f"Upserts are not supported on dialect '{dialect}'")
