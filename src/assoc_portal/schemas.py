"""
assoc_portal.schemas

Typed views of the rows the portal reads from the backend.

Responsibilities:
- Validate raw row dicts into Pydantic models at the service boundary.
- Carry the enumerations defined alongside the persistence schema.
"""

from __future__ import annotations

import json
from datetime import date, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from assoc_portal.auth.models import Role
from assoc_portal.db.models import (
    ApplicationStatus,
    MembershipStatus,
    MessageType,
    ParticipationStatus,
)


class _Row(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)


class Profile(_Row):
    id: str
    email: str
    full_name: str = ""
    role: Role = Role.member
    membership_level: str | None = None
    membership_status: MembershipStatus = MembershipStatus.inactive
    membership_duration_days: int = Field(default=0, ge=0)
    payment_status: str | None = None
    join_date: date | None = None
    phone: str | None = None
    institution: str | None = None
    created_at: datetime | None = None

    @property
    def is_admin(self) -> bool:
        return self.role is Role.admin


class Event(_Row):
    id: str
    creator_id: str
    title: str
    description: str = ""
    location: str = ""
    event_time: datetime
    max_participants: int = Field(default=0, ge=0)
    created_at: datetime | None = None

    @property
    def unlimited(self) -> bool:
        return self.max_participants == 0


class EventParticipation(_Row):
    id: str
    event_id: str
    user_id: str
    status: ParticipationStatus
    created_at: datetime | None = None


class Message(_Row):
    id: str
    sender_id: str
    receiver_id: str
    subject: str
    content: str = ""
    message_type: MessageType = MessageType.text
    related_entity_id: str | None = None
    is_read: bool = False
    created_at: datetime | None = None


class MembershipApplication(_Row):
    id: str
    user_id: str
    full_name: str = ""
    content: str
    status: ApplicationStatus
    created_at: datetime | None = None

    def details(self) -> dict[str, Any]:
        # Older rows may hold free text instead of a JSON document.
        try:
            parsed = json.loads(self.content)
        except ValueError:
            return {"reason": self.content}
        return parsed if isinstance(parsed, dict) else {"reason": self.content}


class EventListing(BaseModel):
    event: Event
    creator_name: str | None = None
    participant_count: int = 0
    my_status: ParticipationStatus | None = None

    @property
    def is_full(self) -> bool:
        return not self.event.unlimited and self.participant_count >= self.event.max_participants


class ParticipantView(BaseModel):
    participation: EventParticipation
    full_name: str | None = None
    email: str | None = None


# --- Module Notes -----------------------------------------------------------
# Models ignore unknown columns so a backend can add fields without breaking reads.
