"""
assoc_portal.services.member_service

Member administration (admin only).

Responsibilities:
- List member profiles, newest first.
- Edit a member's role, membership tier and membership duration.
"""

from __future__ import annotations

from assoc_portal.auth.models import Principal, Role
from assoc_portal.backend.contract import RemoteDataService
from assoc_portal.errors import NotFoundError, ValidationError
from assoc_portal.observability.logging import get_logger
from assoc_portal.schemas import Profile
from assoc_portal.services.common import require_admin, run

log = get_logger(__name__)


class MemberAdminService:
    def __init__(self, *, client: RemoteDataService) -> None:
        self._client = client

    async def list_members(self, *, actor: Principal) -> list[Profile]:
        require_admin(actor)
        rows = await run(
            self._client.table("profiles").select("*").order("created_at", ascending=False)
        )
        return [Profile.model_validate(r) for r in rows]

    async def update_member(
        self,
        *,
        actor: Principal,
        member_id: str,
        role: Role | str | None = None,
        membership_level: str | None = None,
        membership_duration_days: int | None = None,
    ) -> Profile:
        require_admin(actor)

        patch: dict[str, object] = {}
        if role is not None:
            try:
                patch["role"] = Role(role).value
            except ValueError:
                raise ValidationError(f"unknown role: {role!r}") from None
        if membership_level is not None:
            patch["membership_level"] = membership_level.strip() or None
        if membership_duration_days is not None:
            if membership_duration_days < 0:
                raise ValidationError("membership duration cannot be negative")
            patch["membership_duration_days"] = membership_duration_days
        if not patch:
            raise ValidationError("nothing to update")

        rows = await run(self._client.table("profiles").update(patch).eq("id", member_id))
        if not rows:
            raise NotFoundError("member not found")
        log.info("member_updated", member_id=member_id, fields=sorted(patch), admin=actor.subject)
        return Profile.model_validate(rows[0])
