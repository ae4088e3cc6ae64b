"""
assoc_portal.services.common

Helpers shared by the portal services.

Responsibilities:
- Run backend calls, turning connectivity failures into the generic
  "connection failed" domain error.
- Enforce the ownership rule used by event management (creator or admin).
"""

from __future__ import annotations

import contextlib
from collections.abc import Iterator
from typing import Any

from assoc_portal.auth.models import Principal
from assoc_portal.backend.errors import ConnectivityError
from assoc_portal.backend.query import TableQuery
from assoc_portal.errors import ConnectionFailedError, PermissionDeniedError
from assoc_portal.observability.logging import get_logger

log = get_logger(__name__)


@contextlib.contextmanager
def connection_guard(operation: str) -> Iterator[None]:
    try:
        yield
    except ConnectivityError as e:
        log.warning("backend_unreachable", operation=operation, error=str(e))
        raise ConnectionFailedError() from e


async def run(query: TableQuery) -> Any:
    spec = query.spec
    with connection_guard(f"{spec.action}:{spec.table}"):
        return await query.execute()


def require_owner_or_admin(actor: Principal, owner_id: str, *, action: str) -> None:
    if actor.is_admin or actor.subject == owner_id:
        return
    raise PermissionDeniedError(f"only the creator or an administrator may {action}")


def require_admin(actor: Principal) -> None:
    if not actor.is_admin:
        raise PermissionDeniedError("administrator access required")
