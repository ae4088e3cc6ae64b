"""
assoc_portal.services.participation_service

Event participation workflow.

Responsibilities:
- `request_join`: create a PENDING participation and notify the event creator.
- `moderate`: move a PENDING participation to approved/rejected and reply to the
  requester.
- `count_active`: the capacity count (pending + approved).

State machine per (event, user): NONE -> PENDING -> APPROVED | REJECTED. Decided
records are terminal.
"""

from __future__ import annotations

from assoc_portal.auth.models import Principal
from assoc_portal.backend.contract import RemoteDataService
from assoc_portal.backend.errors import BackendError, ConflictError
from assoc_portal.db.models import MessageType, ParticipationStatus
from assoc_portal.errors import (
    CapacityExceededError,
    ConnectionFailedError,
    DuplicateParticipationError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from assoc_portal.observability.logging import get_logger
from assoc_portal.schemas import Event, EventParticipation
from assoc_portal.services.common import require_owner_or_admin, run

log = get_logger(__name__)

ACTIVE_STATUSES = (ParticipationStatus.pending, ParticipationStatus.approved)
DECISIONS = (ParticipationStatus.approved, ParticipationStatus.rejected)


def join_notice(event: Event) -> tuple[str, str]:
    subject = f"活动申请: {event.title}"
    content = f'用户申请参加活动 "{event.title}"。\n请在“我的活动”或消息中心处理申请。'
    return subject, content


def decision_reply(decision: ParticipationStatus) -> tuple[str, str]:
    approved = decision is ParticipationStatus.approved
    subject = f"活动申请结果: {'通过' if approved else '拒绝'}"
    content = f"您对活动的申请已被{'批准' if approved else '拒绝'}。"
    return subject, content


class ParticipationService:
    def __init__(self, *, client: RemoteDataService) -> None:
        self._client = client

    async def count_active(self, event_id: str) -> int:
        rows = await run(
            self._client.table("event_participants")
            .select("id")
            .eq("event_id", event_id)
            .in_("status", [s.value for s in ACTIVE_STATUSES])
        )
        return len(rows)

    async def get(self, event_id: str, user_id: str) -> EventParticipation | None:
        row = await run(
            self._client.table("event_participants")
            .select("*")
            .eq("event_id", event_id)
            .eq("user_id", user_id)
            .maybe_single()
        )
        return EventParticipation.model_validate(row) if row is not None else None

    async def request_join(self, *, actor: Principal, event_id: str) -> EventParticipation:
        event = await self._event(event_id)

        if await self.get(event.id, actor.subject) is not None:
            raise DuplicateParticipationError("you have already applied to this event")
        if not event.unlimited:
            active = await self.count_active(event.id)
            if active >= event.max_participants:
                log.info(
                    "join_rejected_full",
                    event_id=event.id,
                    user_id=actor.subject,
                    capacity=event.max_participants,
                    active=active,
                )
                raise CapacityExceededError("this event is full")

        try:
            row = await run(
                self._client.table("event_participants").insert(
                    {
                        "event_id": event.id,
                        "user_id": actor.subject,
                        "status": ParticipationStatus.pending.value,
                    }
                )
            )
        except ConflictError as e:
            # A concurrent request for the same pair won the insert.
            raise DuplicateParticipationError("you have already applied to this event") from e
        participation = EventParticipation.model_validate(row[0])
        log.info("join_requested", event_id=event.id, user_id=actor.subject)

        subject, content = join_notice(event)
        try:
            await run(
                self._client.table("messages").insert(
                    {
                        "sender_id": actor.subject,
                        "receiver_id": event.creator_id,
                        "subject": subject,
                        "content": content,
                        "message_type": MessageType.event_application.value,
                        "related_entity_id": event.id,
                    }
                )
            )
        except (BackendError, ConnectionFailedError):
            # The join stands without its notification.
            log.exception("join_notification_failed", event_id=event.id, user_id=actor.subject)
        return participation

    async def moderate(
        self,
        *,
        actor: Principal,
        event_id: str,
        user_id: str,
        decision: ParticipationStatus | str,
    ) -> EventParticipation:
        try:
            decision = ParticipationStatus(decision)
        except ValueError:
            raise ValidationError(f"unknown decision: {decision!r}") from None
        if decision not in DECISIONS:
            raise ValidationError("decision must be approved or rejected")

        event = await self._event(event_id)
        require_owner_or_admin(actor, event.creator_id, action="moderate join requests")

        current = await self.get(event.id, user_id)
        if current is None:
            raise NotFoundError("join request not found")
        if current.status is not ParticipationStatus.pending:
            raise InvalidTransitionError(f"join request already {current.status.value}")

        # Compare-and-swap on the pending status; a concurrent moderation leaves zero rows.
        rows = await run(
            self._client.table("event_participants")
            .update({"status": decision.value})
            .eq("event_id", event.id)
            .eq("user_id", user_id)
            .eq("status", ParticipationStatus.pending.value)
        )
        if not rows:
            raise InvalidTransitionError("join request was already decided")
        updated = EventParticipation.model_validate(rows[0])
        log.info(
            "join_moderated",
            event_id=event.id,
            user_id=user_id,
            decision=decision.value,
            moderator=actor.subject,
        )

        subject, content = decision_reply(decision)
        try:
            await run(
                self._client.table("messages").insert(
                    {
                        "sender_id": actor.subject,
                        "receiver_id": user_id,
                        "subject": subject,
                        "content": content,
                        "message_type": MessageType.text.value,
                        "related_entity_id": event.id,
                    }
                )
            )
        except (BackendError, ConnectionFailedError):
            log.exception("moderation_reply_failed", event_id=event.id, user_id=user_id)
        return updated

    async def _event(self, event_id: str) -> Event:
        row = await run(self._client.table("events").select("*").eq("id", event_id).maybe_single())
        if row is None:
            raise NotFoundError("event not found")
        return Event.model_validate(row)


# --- Module Notes -----------------------------------------------------------
# The capacity check and the insert are separate calls, so two different users
# can both pass the check for the last seat. The pair itself cannot duplicate:
# `event_participants` carries a unique (event_id, user_id) constraint.
