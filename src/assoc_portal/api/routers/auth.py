"""
assoc_portal.api.routers.auth

Public account endpoints.

Responsibilities:
- Sign in / sign out, registration, password recovery.
- Report the caller's session state.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Query, Response
from fastapi.responses import RedirectResponse
from pydantic import BaseModel, Field
from starlette.status import HTTP_303_SEE_OTHER

from assoc_portal.access.guard import LOGIN_PATH
from assoc_portal.api.clients import ClientRegistry, PortalClient
from assoc_portal.api.deps import existing_portal, portal_client, registry_dep, settings_dep
from assoc_portal.observability.logging import get_logger
from assoc_portal.services.account_service import AccountService
from assoc_portal.session.state import SessionState
from assoc_portal.settings import Settings

log = get_logger(__name__)

router = APIRouter(tags=["auth"])


class LoginRequest(BaseModel):
    email: str = Field(min_length=3, max_length=320)
    password: str = Field(min_length=1, max_length=256)


class RegisterRequest(BaseModel):
    email: str = Field(min_length=3, max_length=320)
    password: str = Field(min_length=1, max_length=256)
    full_name: str = Field(min_length=1, max_length=256)
    phone: str | None = Field(default=None, max_length=64)
    institution: str | None = Field(default=None, max_length=256)


class ForgotPasswordRequest(BaseModel):
    email: str = Field(min_length=3, max_length=320)


class ResetPasswordRequest(BaseModel):
    password: str = Field(min_length=1, max_length=256)
    confirmation: str = Field(min_length=1, max_length=256)


class NextResponse(BaseModel):
    redirect: str
    detail: str | None = None


def session_view(state: SessionState) -> dict[str, Any]:
    return {
        "loading": state.loading,
        "identity": (
            {"id": state.identity.id, "email": state.identity.email}
            if state.identity is not None
            else None
        ),
        "profile": state.profile.model_dump(mode="json") if state.profile is not None else None,
    }


@router.get("/")
async def root() -> RedirectResponse:
    return RedirectResponse(LOGIN_PATH, status_code=HTTP_303_SEE_OTHER)


@router.get("/session")
async def current_session(portal: PortalClient | None = Depends(existing_portal)) -> dict[str, Any]:
    if portal is None:
        return session_view(SessionState(loading=False))
    return session_view(portal.store.state)


@router.post("/login", response_model=NextResponse)
async def login(
    body: LoginRequest,
    portal: PortalClient = Depends(portal_client),
    settings: Settings = Depends(settings_dep),
) -> NextResponse:
    result = await AccountService(client=portal.client, settings=settings).sign_in(
        email=body.email, password=body.password
    )
    # Let the store pick up the new identity before the browser follows the redirect.
    await portal.store.settle(timeout=settings.session_settle_timeout_seconds)
    return NextResponse(redirect=result.landing)


@router.post("/register", response_model=NextResponse)
async def register(
    body: RegisterRequest,
    portal: PortalClient = Depends(portal_client),
    settings: Settings = Depends(settings_dep),
) -> NextResponse:
    result = await AccountService(client=portal.client, settings=settings).register(
        email=body.email,
        password=body.password,
        full_name=body.full_name,
        phone=body.phone,
        institution=body.institution,
    )
    return NextResponse(redirect=LOGIN_PATH, detail=result.outcome.value)


@router.post("/forgot-password", response_model=NextResponse)
async def forgot_password(
    body: ForgotPasswordRequest,
    portal: PortalClient = Depends(portal_client),
    settings: Settings = Depends(settings_dep),
) -> NextResponse:
    await AccountService(client=portal.client, settings=settings).request_password_reset(
        email=body.email
    )
    return NextResponse(redirect=LOGIN_PATH, detail="recovery_link_sent")


@router.get("/reset-password", response_model=NextResponse)
async def open_reset_link(
    token: str = Query(min_length=1),
    portal: PortalClient = Depends(portal_client),
    settings: Settings = Depends(settings_dep),
) -> NextResponse:
    await AccountService(client=portal.client, settings=settings).verify_recovery(token=token)
    await portal.store.settle(timeout=settings.session_settle_timeout_seconds)
    return NextResponse(redirect="/reset-password", detail="choose_new_password")


@router.post("/reset-password", response_model=NextResponse)
async def reset_password(
    body: ResetPasswordRequest,
    portal: PortalClient = Depends(portal_client),
    settings: Settings = Depends(settings_dep),
) -> NextResponse:
    await AccountService(client=portal.client, settings=settings).reset_password(
        password=body.password, confirmation=body.confirmation
    )
    return NextResponse(redirect=LOGIN_PATH, detail="password_updated")


@router.post("/logout", response_model=NextResponse)
async def logout(
    response: Response,
    portal: PortalClient | None = Depends(existing_portal),
    registry: ClientRegistry = Depends(registry_dep),
    settings: Settings = Depends(settings_dep),
) -> NextResponse:
    if portal is not None:
        await portal.store.sign_out()
        await registry.discard(portal.sid)
    response.delete_cookie(settings.session_cookie_name)
    return NextResponse(redirect=LOGIN_PATH)
