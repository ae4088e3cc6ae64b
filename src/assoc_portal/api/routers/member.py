"""
assoc_portal.api.routers.member

Member area (`/member/*`), open to every authenticated identity.

Responsibilities:
- Profile and email settings.
- Event board: list, create, edit, delete, join, moderate join requests.
- Message center.
- Membership applications.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from fastapi import APIRouter, Depends, Query, Response
from pydantic import BaseModel, Field
from starlette.status import HTTP_201_CREATED, HTTP_204_NO_CONTENT

from assoc_portal.api.deps import Caller, require_role, settings_dep
from assoc_portal.api.routers.auth import session_view
from assoc_portal.auth.models import Role
from assoc_portal.schemas import (
    Event,
    EventListing,
    EventParticipation,
    MembershipApplication,
    Message,
    ParticipantView,
    Profile,
)
from assoc_portal.services.account_service import AccountService
from assoc_portal.services.application_service import ApplicationService
from assoc_portal.services.event_service import EventService
from assoc_portal.services.message_service import MessageService
from assoc_portal.services.participation_service import ParticipationService
from assoc_portal.settings import Settings

router = APIRouter(prefix="/member", tags=["member"])

member = require_role(Role.member)


class EmailChangeRequest(BaseModel):
    email: str = Field(min_length=3, max_length=320)


class EventCreateRequest(BaseModel):
    title: str = Field(min_length=1, max_length=256)
    event_time: datetime
    description: str = ""
    location: str = Field(default="", max_length=256)
    max_participants: int = Field(default=0, ge=0)


class EventUpdateRequest(BaseModel):
    title: str | None = Field(default=None, min_length=1, max_length=256)
    event_time: datetime | None = None
    description: str | None = None
    location: str | None = Field(default=None, max_length=256)
    max_participants: int | None = Field(default=None, ge=0)


class ModerationRequest(BaseModel):
    decision: Literal["approved", "rejected"]


class MessageSendRequest(BaseModel):
    recipient_email: str = Field(min_length=3, max_length=320)
    subject: str = Field(min_length=1, max_length=256)
    content: str = ""


class ApplicationRequest(BaseModel):
    reason: str = Field(min_length=1)
    membership_level: str | None = Field(default=None, max_length=64)


class EventListingView(BaseModel):
    event: Event
    creator_name: str | None
    participant_count: int
    my_status: str | None
    is_full: bool

    @classmethod
    def of(cls, listing: EventListing) -> EventListingView:
        return cls(
            event=listing.event,
            creator_name=listing.creator_name,
            participant_count=listing.participant_count,
            my_status=listing.my_status.value if listing.my_status is not None else None,
            is_full=listing.is_full,
        )


class MessageView(BaseModel):
    message: Message
    # Set for event_application messages: status of the join request they announced.
    application_status: str | None = None


@router.get("")
async def home(caller: Caller = Depends(member)) -> dict[str, Any]:
    return session_view(caller.state)


@router.get("/profile", response_model=Profile | None)
async def my_profile(caller: Caller = Depends(member)) -> Profile | None:
    return caller.state.profile


@router.post("/email")
async def change_email(
    body: EmailChangeRequest,
    caller: Caller = Depends(member),
    settings: Settings = Depends(settings_dep),
) -> dict[str, str]:
    identity = await AccountService(client=caller.client, settings=settings).change_email(
        new_email=body.email
    )
    return {"email": identity.email}


# -- events ----------------------------------------------------------------


@router.get("/events", response_model=list[EventListingView])
async def list_events(caller: Caller = Depends(member)) -> list[EventListingView]:
    listings = await EventService(client=caller.client).list_events(actor=caller.principal)
    return [EventListingView.of(item) for item in listings]


@router.post("/events", response_model=Event, status_code=HTTP_201_CREATED)
async def create_event(body: EventCreateRequest, caller: Caller = Depends(member)) -> Event:
    return await EventService(client=caller.client).create_event(
        actor=caller.principal,
        title=body.title,
        event_time=body.event_time,
        description=body.description,
        location=body.location,
        max_participants=body.max_participants,
    )


@router.patch("/events/{event_id}", response_model=Event)
async def update_event(
    event_id: str, body: EventUpdateRequest, caller: Caller = Depends(member)
) -> Event:
    return await EventService(client=caller.client).update_event(
        actor=caller.principal, event_id=event_id, **body.model_dump(exclude_unset=True)
    )


@router.delete("/events/{event_id}", status_code=HTTP_204_NO_CONTENT)
async def delete_event(event_id: str, caller: Caller = Depends(member)) -> Response:
    await EventService(client=caller.client).delete_event(actor=caller.principal, event_id=event_id)
    return Response(status_code=HTTP_204_NO_CONTENT)


@router.post(
    "/events/{event_id}/join", response_model=EventParticipation, status_code=HTTP_201_CREATED
)
async def join_event(event_id: str, caller: Caller = Depends(member)) -> EventParticipation:
    return await ParticipationService(client=caller.client).request_join(
        actor=caller.principal, event_id=event_id
    )


@router.get("/events/{event_id}/participants", response_model=list[ParticipantView])
async def event_participants(
    event_id: str, caller: Caller = Depends(member)
) -> list[ParticipantView]:
    return await EventService(client=caller.client).participants(
        actor=caller.principal, event_id=event_id
    )


@router.post("/events/{event_id}/participants/{user_id}", response_model=EventParticipation)
async def moderate_participant(
    event_id: str,
    user_id: str,
    body: ModerationRequest,
    caller: Caller = Depends(member),
) -> EventParticipation:
    return await ParticipationService(client=caller.client).moderate(
        actor=caller.principal, event_id=event_id, user_id=user_id, decision=body.decision
    )


# -- messages --------------------------------------------------------------


@router.get("/messages", response_model=list[MessageView])
async def list_messages(
    box: Literal["inbox", "sent"] = Query(default="inbox"),
    caller: Caller = Depends(member),
) -> list[MessageView]:
    svc = MessageService(client=caller.client)
    if box == "inbox":
        messages = await svc.inbox(actor=caller.principal)
    else:
        messages = await svc.sent(actor=caller.principal)
    statuses = await svc.application_statuses(messages)
    return [
        MessageView(
            message=m,
            application_status=(s.value if (s := statuses.get(m.id)) is not None else None),
        )
        for m in messages
    ]


@router.get("/messages/directory", response_model=list[Profile])
async def message_directory(caller: Caller = Depends(member)) -> list[Profile]:
    return await MessageService(client=caller.client).directory()


@router.post("/messages", response_model=Message, status_code=HTTP_201_CREATED)
async def send_message(body: MessageSendRequest, caller: Caller = Depends(member)) -> Message:
    return await MessageService(client=caller.client).send(
        actor=caller.principal,
        recipient_email=body.recipient_email,
        subject=body.subject,
        content=body.content,
    )


@router.post("/messages/{message_id}/read", response_model=Message)
async def mark_message_read(message_id: str, caller: Caller = Depends(member)) -> Message:
    return await MessageService(client=caller.client).mark_read(
        actor=caller.principal, message_id=message_id
    )


# -- applications ----------------------------------------------------------


@router.get("/applications", response_model=list[MembershipApplication])
async def my_applications(caller: Caller = Depends(member)) -> list[MembershipApplication]:
    return await ApplicationService(client=caller.client).my_applications(actor=caller.principal)


@router.post(
    "/applications", response_model=MembershipApplication, status_code=HTTP_201_CREATED
)
async def submit_application(
    body: ApplicationRequest, caller: Caller = Depends(member)
) -> MembershipApplication:
    return await ApplicationService(client=caller.client).submit(
        actor=caller.principal, reason=body.reason, membership_level=body.membership_level
    )
