"""
assoc_portal.db.base

SQLAlchemy declarative base.

Responsibilities:
- Provide a shared DeclarativeBase for the portal tables.
- Name constraints deterministically so SQLite batch migrations can address them.
"""

from __future__ import annotations

from sqlalchemy import MetaData
from sqlalchemy.orm import DeclarativeBase

NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}


class Base(DeclarativeBase):
    metadata = MetaData(naming_convention=NAMING_CONVENTION)


# --- Module Notes -----------------------------------------------------------
# The local backend resolves table names through `Base.metadata.tables`, so every
# table it serves must be declared on this base.
