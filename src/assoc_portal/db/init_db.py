"""
assoc_portal.db.init_db

Schema bootstrap for the local Remote Data Service.

Responsibilities:
- Create the auth user table and the portal tables when the local backend starts
  in dev/test.
- Report which tables were missing, so a fresh database is visible in the logs.
"""

from __future__ import annotations

from sqlalchemy import inspect
from sqlalchemy.ext.asyncio import AsyncEngine

from assoc_portal.db import models  # noqa: F401  # register tables on Base.metadata
from assoc_portal.db.base import Base
from assoc_portal.observability.logging import get_logger

log = get_logger(__name__)


async def init_db(engine: AsyncEngine) -> list[str]:
    """Create any missing tables and return their names in creation order."""

    async with engine.begin() as conn:
        existing = set(await conn.run_sync(lambda sync: inspect(sync).get_table_names()))
        missing = [t.name for t in Base.metadata.sorted_tables if t.name not in existing]
        if missing:
            await conn.run_sync(Base.metadata.create_all)
    log.info("schema_ready", created=missing)
    return missing


# --- Module Notes -----------------------------------------------------------
# Prod databases are migrated with Alembic (`alembic upgrade head`); the local
# backend only calls this outside prod.
