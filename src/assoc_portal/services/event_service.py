"""
assoc_portal.services.event_service

Event board.

Responsibilities:
- List events by time with participant counts and the caller's own status.
- Create, update and delete events (updates/deletes by the creator or an admin).
- List the join requests of an event for its creator or an admin.
"""

from __future__ import annotations

from collections import Counter
from datetime import UTC, datetime
from typing import Any

from assoc_portal.auth.models import Principal
from assoc_portal.backend.contract import RemoteDataService
from assoc_portal.errors import NotFoundError, ValidationError
from assoc_portal.observability.logging import get_logger
from assoc_portal.schemas import Event, EventListing, EventParticipation, ParticipantView
from assoc_portal.services.common import require_owner_or_admin, run
from assoc_portal.services.participation_service import ACTIVE_STATUSES

log = get_logger(__name__)

_EDITABLE = ("title", "description", "location", "event_time", "max_participants")


def _validate_fields(fields: dict[str, Any], *, creating: bool) -> dict[str, Any]:
    out = dict(fields)
    if creating or "title" in out:
        title = (out.get("title") or "").strip()
        if not title:
            raise ValidationError("title is required")
        out["title"] = title
    if creating or "event_time" in out:
        event_time = out.get("event_time")
        if not isinstance(event_time, datetime):
            raise ValidationError("event time is required")
        # Stored as naive UTC.
        if event_time.tzinfo is not None:
            out["event_time"] = event_time.astimezone(UTC).replace(tzinfo=None)
    if "max_participants" in out:
        capacity = out["max_participants"]
        if capacity is None:
            out["max_participants"] = 0
        elif not isinstance(capacity, int) or capacity < 0:
            raise ValidationError("capacity must be zero (unlimited) or a positive number")
    for key in ("description", "location"):
        if key in out and out[key] is None:
            out[key] = ""
    return out


class EventService:
    def __init__(self, *, client: RemoteDataService) -> None:
        self._client = client

    async def list_events(self, *, actor: Principal) -> list[EventListing]:
        events = [
            Event.model_validate(r)
            for r in await run(
                self._client.table("events").select("*").order("event_time", ascending=True)
            )
        ]
        if not events:
            return []

        participations = [
            EventParticipation.model_validate(r)
            for r in await run(
                self._client.table("event_participants")
                .select("*")
                .in_("event_id", [e.id for e in events])
            )
        ]
        counts = Counter(p.event_id for p in participations if p.status in ACTIVE_STATUSES)
        mine = {p.event_id: p.status for p in participations if p.user_id == actor.subject}

        creator_ids = sorted({e.creator_id for e in events})
        creators = {
            r["id"]: r["full_name"]
            for r in await run(
                self._client.table("profiles").select("id,full_name").in_("id", creator_ids)
            )
        }

        return [
            EventListing(
                event=e,
                creator_name=creators.get(e.creator_id),
                participant_count=counts.get(e.id, 0),
                my_status=mine.get(e.id),
            )
            for e in events
        ]

    async def get_event(self, event_id: str) -> Event:
        row = await run(self._client.table("events").select("*").eq("id", event_id).maybe_single())
        if row is None:
            raise NotFoundError("event not found")
        return Event.model_validate(row)

    async def create_event(
        self,
        *,
        actor: Principal,
        title: str,
        event_time: datetime | None,
        description: str = "",
        location: str = "",
        max_participants: int = 0,
    ) -> Event:
        values = _validate_fields(
            {
                "title": title,
                "event_time": event_time,
                "description": description,
                "location": location,
                "max_participants": max_participants,
            },
            creating=True,
        )
        values["creator_id"] = actor.subject
        rows = await run(self._client.table("events").insert(values))
        event = Event.model_validate(rows[0])
        log.info("event_created", event_id=event.id, creator_id=actor.subject)
        return event

    async def update_event(self, *, actor: Principal, event_id: str, **changes: Any) -> Event:
        unknown = set(changes) - set(_EDITABLE)
        if unknown:
            raise ValidationError(f"cannot update: {', '.join(sorted(unknown))}")
        if not changes:
            raise ValidationError("nothing to update")

        event = await self.get_event(event_id)
        require_owner_or_admin(actor, event.creator_id, action="edit this event")

        patch = _validate_fields(changes, creating=False)
        rows = await run(self._client.table("events").update(patch).eq("id", event.id))
        if not rows:
            raise NotFoundError("event not found")
        log.info("event_updated", event_id=event.id, fields=sorted(patch))
        return Event.model_validate(rows[0])

    async def delete_event(self, *, actor: Principal, event_id: str) -> None:
        event = await self.get_event(event_id)
        require_owner_or_admin(actor, event.creator_id, action="delete this event")

        await run(self._client.table("event_participants").delete().eq("event_id", event.id))
        await run(self._client.table("events").delete().eq("id", event.id))
        log.info("event_deleted", event_id=event.id, actor=actor.subject)

    async def participants(self, *, actor: Principal, event_id: str) -> list[ParticipantView]:
        event = await self.get_event(event_id)
        require_owner_or_admin(actor, event.creator_id, action="view join requests")

        records = [
            EventParticipation.model_validate(r)
            for r in await run(
                self._client.table("event_participants")
                .select("*")
                .eq("event_id", event.id)
                .order("created_at", ascending=True)
            )
        ]
        if not records:
            return []
        profiles = {
            r["id"]: r
            for r in await run(
                self._client.table("profiles")
                .select("id,full_name,email")
                .in_("id", [p.user_id for p in records])
            )
        }
        return [
            ParticipantView(
                participation=p,
                full_name=profiles.get(p.user_id, {}).get("full_name"),
                email=profiles.get(p.user_id, {}).get("email"),
            )
            for p in records
        ]
