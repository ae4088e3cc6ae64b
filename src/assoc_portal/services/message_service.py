"""
assoc_portal.services.message_service

Message center.

Responsibilities:
- Send a direct message to a member addressed by email.
- List received and sent messages, newest first.
- Mark received messages as read.
- Resolve the participation status behind `event_application` messages so the
  inbox can show whether a join request is still awaiting a decision.
"""

from __future__ import annotations

from collections.abc import Sequence

from assoc_portal.auth.models import Principal
from assoc_portal.backend.contract import RemoteDataService
from assoc_portal.db.models import MessageType, ParticipationStatus
from assoc_portal.errors import (
    NotFoundError,
    PermissionDeniedError,
    RecipientNotFoundError,
    ValidationError,
)
from assoc_portal.observability.logging import get_logger
from assoc_portal.schemas import Message, Profile
from assoc_portal.services.common import run

log = get_logger(__name__)


class MessageService:
    def __init__(self, *, client: RemoteDataService) -> None:
        self._client = client

    async def directory(self) -> list[Profile]:
        """Members that can be addressed, by name."""

        rows = await run(self._client.table("profiles").select("*").order("full_name"))
        return [Profile.model_validate(r) for r in rows]

    async def send(
        self, *, actor: Principal, recipient_email: str, subject: str, content: str
    ) -> Message:
        subject = subject.strip()
        if not subject:
            raise ValidationError("subject is required")
        email = recipient_email.strip().lower()
        if not email:
            raise ValidationError("recipient is required")

        recipient = await run(
            self._client.table("profiles").select("id").eq("email", email).maybe_single()
        )
        if recipient is None:
            raise RecipientNotFoundError("no member is registered with that email")

        rows = await run(
            self._client.table("messages").insert(
                {
                    "sender_id": actor.subject,
                    "receiver_id": recipient["id"],
                    "subject": subject,
                    "content": content,
                    "message_type": MessageType.text.value,
                }
            )
        )
        message = Message.model_validate(rows[0])
        log.info("message_sent", message_id=message.id, sender_id=actor.subject)
        return message

    async def inbox(self, *, actor: Principal) -> list[Message]:
        return await self._list("receiver_id", actor.subject)

    async def sent(self, *, actor: Principal) -> list[Message]:
        return await self._list("sender_id", actor.subject)

    async def mark_read(self, *, actor: Principal, message_id: str) -> Message:
        row = await run(
            self._client.table("messages").select("*").eq("id", message_id).maybe_single()
        )
        if row is None:
            raise NotFoundError("message not found")
        message = Message.model_validate(row)
        if message.receiver_id != actor.subject:
            raise PermissionDeniedError("only the receiver can mark a message as read")
        if message.is_read:
            return message

        rows = await run(
            self._client.table("messages").update({"is_read": True}).eq("id", message.id)
        )
        return Message.model_validate(rows[0]) if rows else message

    async def application_statuses(
        self, messages: Sequence[Message]
    ) -> dict[str, ParticipationStatus | None]:
        """
        Map each `event_application` message id to the current status of the
        join request it announced (None when the request no longer exists).
        """

        applications = [
            m
            for m in messages
            if m.message_type is MessageType.event_application and m.related_entity_id
        ]
        if not applications:
            return {}

        rows = await run(
            self._client.table("event_participants")
            .select("event_id,user_id,status")
            .in_("event_id", sorted({m.related_entity_id for m in applications}))
        )
        by_pair = {(r["event_id"], r["user_id"]): ParticipationStatus(r["status"]) for r in rows}
        return {m.id: by_pair.get((m.related_entity_id, m.sender_id)) for m in applications}

    async def _list(self, column: str, user_id: str) -> list[Message]:
        rows = await run(
            self._client.table("messages")
            .select("*")
            .eq(column, user_id)
            .order("created_at", ascending=False)
        )
        return [Message.model_validate(r) for r in rows]
