"""
assoc_portal.services.application_service

Membership applications.

Responsibilities:
- Let a member apply for (or upgrade to) a membership tier with a reason.
- Let administrators list applications and decide pending ones.
- Keep the applicant's profile membership status in step with the decision.
"""

from __future__ import annotations

import json
from datetime import UTC, datetime

from assoc_portal.auth.models import Principal
from assoc_portal.backend.contract import RemoteDataService
from assoc_portal.db.models import ApplicationStatus, MembershipStatus
from assoc_portal.errors import (
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from assoc_portal.observability.logging import get_logger
from assoc_portal.schemas import MembershipApplication, Profile
from assoc_portal.services.common import require_admin, run

log = get_logger(__name__)


class ApplicationService:
    def __init__(self, *, client: RemoteDataService) -> None:
        self._client = client

    async def submit(
        self, *, actor: Principal, reason: str, membership_level: str | None = None
    ) -> MembershipApplication:
        reason = reason.strip()
        if not reason:
            raise ValidationError("please describe the reason for your application")

        profile_row = await run(
            self._client.table("profiles").select("*").eq("id", actor.subject).maybe_single()
        )
        if profile_row is None:
            raise NotFoundError("profile not found")
        profile = Profile.model_validate(profile_row)

        document = {"reason": reason, "membership_level": membership_level}
        rows = await run(
            self._client.table("applications").insert(
                {
                    "user_id": actor.subject,
                    "full_name": profile.full_name or profile.email,
                    "content": json.dumps(document, ensure_ascii=False),
                    "status": ApplicationStatus.pending.value,
                }
            )
        )
        application = MembershipApplication.model_validate(rows[0])

        # An active member asking for an upgrade keeps their current standing.
        if profile.membership_status in (MembershipStatus.inactive, MembershipStatus.rejected):
            await run(
                self._client.table("profiles")
                .update({"membership_status": MembershipStatus.pending.value})
                .eq("id", actor.subject)
            )
        log.info(
            "application_submitted",
            application_id=application.id,
            user_id=actor.subject,
            membership_level=membership_level,
        )
        return application

    async def my_applications(self, *, actor: Principal) -> list[MembershipApplication]:
        rows = await run(
            self._client.table("applications")
            .select("*")
            .eq("user_id", actor.subject)
            .order("created_at", ascending=False)
        )
        return [MembershipApplication.model_validate(r) for r in rows]

    async def list_applications(self, *, actor: Principal) -> list[MembershipApplication]:
        require_admin(actor)
        rows = await run(
            self._client.table("applications").select("*").order("created_at", ascending=False)
        )
        return [MembershipApplication.model_validate(r) for r in rows]

    async def review(
        self, *, actor: Principal, application_id: str, decision: ApplicationStatus | str
    ) -> MembershipApplication:
        require_admin(actor)
        try:
            decision = ApplicationStatus(decision)
        except ValueError:
            raise ValidationError(f"unknown decision: {decision!r}") from None
        if decision is ApplicationStatus.pending:
            raise ValidationError("decision must be approved or rejected")

        rows = await run(
            self._client.table("applications")
            .update({"status": decision.value})
            .eq("id", application_id)
            .eq("status", ApplicationStatus.pending.value)
        )
        if not rows:
            existing = await run(
                self._client.table("applications")
                .select("status")
                .eq("id", application_id)
                .maybe_single()
            )
            if existing is None:
                raise NotFoundError("application not found")
            raise InvalidTransitionError(f"application already {existing['status']}")

        application = MembershipApplication.model_validate(rows[0])
        await self._apply_to_profile(application, decision)
        log.info(
            "application_reviewed",
            application_id=application.id,
            user_id=application.user_id,
            decision=decision.value,
            reviewer=actor.subject,
        )
        return application

    async def _apply_to_profile(
        self, application: MembershipApplication, decision: ApplicationStatus
    ) -> None:
        row = await run(
            self._client.table("profiles").select("*").eq("id", application.user_id).maybe_single()
        )
        if row is None:
            log.warning("application_profile_missing", application_id=application.id)
            return
        profile = Profile.model_validate(row)

        patch: dict[str, object]
        if decision is ApplicationStatus.approved:
            patch = {"membership_status": MembershipStatus.active.value}
            level = application.details().get("membership_level")
            if level:
                patch["membership_level"] = level
            if profile.join_date is None:
                patch["join_date"] = datetime.now(UTC).date()
        elif profile.membership_status is not MembershipStatus.active:
            patch = {"membership_status": MembershipStatus.rejected.value}
        else:
            return

        await run(self._client.table("profiles").update(patch).eq("id", profile.id))
