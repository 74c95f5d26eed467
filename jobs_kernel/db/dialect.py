"""
Dialect-specific INSERT constructs for atomic claims.

``insert_for(session, model)`` returns the PostgreSQL or SQLite ``insert()``
for the session's bind so callers can use ``on_conflict_do_nothing()``.
Those are the only two supported backends.
"""

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session


def insert_for(session: Session, model):
    """Dialect ``insert()`` against ``model``'s table."""
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        return postgresql.insert(model.__table__)
    if dialect == "sqlite":
        return sqlite.insert(model.__table__)
    raise ValueError(
        f"Unsupported database dialect '{dialect}': "
        "atomic claims need INSERT ... ON CONFLICT DO NOTHING"
    )
