"""
assoc_portal.api.routers.admin

Administration area (`/admin/*`), admins only.

Responsibilities:
- Member records: list and edit role / tier / duration.
- Membership applications: list and decide.
"""

from __future__ import annotations

from typing import Any, Literal

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from assoc_portal.api.deps import Caller, require_role
from assoc_portal.api.routers.auth import session_view
from assoc_portal.auth.models import Role
from assoc_portal.schemas import MembershipApplication, Profile
from assoc_portal.services.application_service import ApplicationService
from assoc_portal.services.member_service import MemberAdminService

router = APIRouter(prefix="/admin", tags=["admin"])

admin = require_role(Role.admin)


class MemberUpdateRequest(BaseModel):
    role: Role | None = None
    membership_level: str | None = Field(default=None, max_length=64)
    membership_duration_days: int | None = Field(default=None, ge=0)


class ReviewRequest(BaseModel):
    decision: Literal["approved", "rejected"]


@router.get("")
async def home(caller: Caller = Depends(admin)) -> dict[str, Any]:
    return session_view(caller.state)


@router.get("/members", response_model=list[Profile])
async def list_members(caller: Caller = Depends(admin)) -> list[Profile]:
    return await MemberAdminService(client=caller.client).list_members(actor=caller.principal)


@router.patch("/members/{member_id}", response_model=Profile)
async def update_member(
    member_id: str, body: MemberUpdateRequest, caller: Caller = Depends(admin)
) -> Profile:
    return await MemberAdminService(client=caller.client).update_member(
        actor=caller.principal,
        member_id=member_id,
        role=body.role,
        membership_level=body.membership_level,
        membership_duration_days=body.membership_duration_days,
    )


@router.get("/applications", response_model=list[MembershipApplication])
async def list_applications(caller: Caller = Depends(admin)) -> list[MembershipApplication]:
    return await ApplicationService(client=caller.client).list_applications(
        actor=caller.principal
    )


@router.post("/applications/{application_id}", response_model=MembershipApplication)
async def review_application(
    application_id: str, body: ReviewRequest, caller: Caller = Depends(admin)
) -> MembershipApplication:
    return await ApplicationService(client=caller.client).review(
        actor=caller.principal, application_id=application_id, decision=body.decision
    )
