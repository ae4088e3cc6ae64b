"""
assoc_portal.api.deps

FastAPI dependency wiring for the API layer.

Responsibilities:
- Provide dependency functions for settings and the client registry.
- Resolve (or create) the caller's portal client from the session cookie.
- Enforce the route guard via the `require_role` dependency factory.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from dataclasses import dataclass

from fastapi import Depends, Request, Response

from assoc_portal.access.guard import AccessDecision, decide
from assoc_portal.api.clients import ClientRegistry, PortalClient
from assoc_portal.api.errors import AccessRejected
from assoc_portal.auth.models import Principal, Role
from assoc_portal.backend.contract import RemoteDataService
from assoc_portal.session.state import SessionState
from assoc_portal.settings import Settings

# What a caller without any portal client looks like to the guard.
_ANONYMOUS = SessionState(identity=None, profile=None, loading=False)


def settings_dep(request: Request) -> Settings:
    # Settings are fixed at app creation in `assoc_portal.api.app.create_app`.
    return request.app.state.settings  # type: ignore[attr-defined]


def registry_dep(request: Request) -> ClientRegistry:
    return request.app.state.registry  # type: ignore[attr-defined]


def existing_portal(
    request: Request,
    registry: ClientRegistry = Depends(registry_dep),
    settings: Settings = Depends(settings_dep),
) -> PortalClient | None:
    return registry.get(request.cookies.get(settings.session_cookie_name))


async def portal_client(
    request: Request,
    response: Response,
    registry: ClientRegistry = Depends(registry_dep),
    settings: Settings = Depends(settings_dep),
) -> AsyncIterator[PortalClient]:
    """
    Portal client for the public auth routes; a new browser gets a fresh client
    and its cookie.

    A client created for a request that then fails is discarded: the error
    response carries no cookie, so nobody could reach it again.
    """

    portal, created = await registry.get_or_create(
        request.cookies.get(settings.session_cookie_name)
    )
    if not created:
        yield portal
        return

    response.set_cookie(
        settings.session_cookie_name,
        portal.sid,
        httponly=True,
        samesite="lax",
        secure=settings.env == "prod",
    )
    try:
        yield portal
    except Exception:
        await registry.discard(portal.sid)
        raise


@dataclass(frozen=True, slots=True)
class Caller:
    portal: PortalClient
    principal: Principal
    state: SessionState

    @property
    def client(self) -> RemoteDataService:
        return self.portal.client


def require_role(required: Role):
    async def _dep(portal: PortalClient | None = Depends(existing_portal)) -> Caller:
        if portal is None:
            raise AccessRejected(decide(_ANONYMOUS, required))

        # The token may have expired or been revoked since the state was cached.
        state = await portal.store.revalidate()
        decision = decide(state, required)
        if decision is not AccessDecision.authorized:
            raise AccessRejected(decision)
        principal = state.principal()
        if principal is None:
            raise AccessRejected(AccessDecision.unauthenticated)
        return Caller(portal=portal, principal=principal, state=state)

    return _dep


# --- Module Notes -----------------------------------------------------------
# Guarded routes never create a portal client: an unknown cookie is simply
# UNAUTHENTICATED and redirected to the sign-in page.
