"""
assoc_portal.api.clients

Per-browser portal clients.

Responsibilities:
- Give each browser its own Remote Data Service handle and `SessionStore`,
  keyed by an opaque session cookie.
- Initialize stores on creation and close them on sign-out, idle expiry and shutdown.
"""

from __future__ import annotations

import secrets
import time
from collections.abc import Callable
from dataclasses import dataclass, field

from assoc_portal.backend.contract import RemoteDataService
from assoc_portal.observability.logging import get_logger
from assoc_portal.session.hydration import ProfileHydrator
from assoc_portal.session.store import SessionStore
from assoc_portal.settings import Settings

log = get_logger(__name__)


@dataclass(slots=True)
class PortalClient:
    sid: str
    client: RemoteDataService
    store: SessionStore
    last_seen: float = field(default=0.0, compare=False)


class ClientRegistry:
    def __init__(
        self,
        *,
        client_factory: Callable[[], RemoteDataService],
        settings: Settings,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._client_factory = client_factory
        self._settings = settings
        self._clock = clock
        self._clients: dict[str, PortalClient] = {}

    def __len__(self) -> int:
        return len(self._clients)

    def get(self, sid: str | None) -> PortalClient | None:
        if not sid:
            return None
        portal = self._clients.get(sid)
        if portal is not None:
            portal.last_seen = self._clock()
        return portal

    async def get_or_create(self, sid: str | None) -> tuple[PortalClient, bool]:
        existing = self.get(sid)
        if existing is not None:
            return existing, False

        await self.evict_idle()
        client = self._client_factory()
        store = SessionStore(
            client=client,
            hydrator=ProfileHydrator.from_settings(client=client, settings=self._settings),
        )
        portal = PortalClient(
            sid=secrets.token_urlsafe(32), client=client, store=store, last_seen=self._clock()
        )
        self._clients[portal.sid] = portal
        await store.initialize()
        log.info("portal_client_created", clients=len(self._clients))
        return portal, True

    async def evict_idle(self) -> int:
        """Close clients nobody has used for `portal_client_idle_seconds`."""

        cutoff = self._clock() - self._settings.portal_client_idle_seconds
        stale = [sid for sid, portal in self._clients.items() if portal.last_seen <= cutoff]
        for sid in stale:
            await self.discard(sid)
        if stale:
            log.info("portal_clients_evicted", evicted=len(stale), clients=len(self._clients))
        return len(stale)

    async def discard(self, sid: str) -> None:
        portal = self._clients.pop(sid, None)
        if portal is not None:
            await portal.store.close()

    async def close(self) -> None:
        while self._clients:
            _, portal = self._clients.popitem()
            await portal.store.close()
