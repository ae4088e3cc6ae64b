"""
tests.test_services

Events, messages, membership applications, member administration and account flows
against the local backend.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta, timezone

import pytest

from assoc_portal.auth.models import Role
from assoc_portal.db.models import ApplicationStatus, MembershipStatus, MessageType, ParticipationStatus
from assoc_portal.errors import (
    AuthenticationFailedError,
    InvalidTransitionError,
    NotFoundError,
    PermissionDeniedError,
    RecipientNotFoundError,
    ValidationError,
)
from assoc_portal.services.account_service import AccountService, RegistrationOutcome
from assoc_portal.services.application_service import ApplicationService
from assoc_portal.services.event_service import EventService
from assoc_portal.services.member_service import MemberAdminService
from assoc_portal.services.message_service import MessageService
from assoc_portal.services.participation_service import ParticipationService

PASSWORD = "correct-horse"

WHEN = datetime(2030, 3, 14, 18, 0)


# ---- events ----------------------------------------------------------------


@pytest.mark.asyncio
async def test_event_listing_counts_and_my_status(make_user) -> None:
    creator = await make_user("host@example.org", full_name="Host")
    member = await make_user("guest@example.org")
    events = EventService(client=creator.client)
    later = await events.create_event(actor=creator.principal, title="Later", event_time=WHEN + timedelta(days=1))
    sooner = await events.create_event(
        actor=creator.principal, title="Sooner", event_time=WHEN, max_participants=1
    )
    await ParticipationService(client=member.client).request_join(
        actor=member.principal, event_id=sooner.id
    )

    listing = await EventService(client=member.client).list_events(actor=member.principal)

    assert [item.event.id for item in listing] == [sooner.id, later.id]
    first, second = listing
    assert first.creator_name == "Host"
    assert first.participant_count == 1
    assert first.my_status is ParticipationStatus.pending
    assert first.is_full
    assert second.participant_count == 0
    assert second.my_status is None
    assert not second.is_full


@pytest.mark.asyncio
async def test_event_listing_empty(make_user) -> None:
    user = await make_user("solo@example.org")
    assert await EventService(client=user.client).list_events(actor=user.principal) == []


@pytest.mark.asyncio
async def test_create_event_validation(make_user) -> None:
    user = await make_user("host@example.org")
    events = EventService(client=user.client)

    with pytest.raises(ValidationError):
        await events.create_event(actor=user.principal, title="  ", event_time=WHEN)
    with pytest.raises(ValidationError):
        await events.create_event(actor=user.principal, title="No time", event_time=None)
    with pytest.raises(ValidationError):
        await events.create_event(
            actor=user.principal, title="Negative", event_time=WHEN, max_participants=-1
        )


@pytest.mark.asyncio
async def test_aware_event_time_is_stored_as_utc(make_user) -> None:
    user = await make_user("host@example.org")
    shanghai = timezone(timedelta(hours=8))
    event = await EventService(client=user.client).create_event(
        actor=user.principal, title="Tea", event_time=datetime(2030, 3, 14, 20, 0, tzinfo=shanghai)
    )
    assert event.event_time.replace(tzinfo=None) == datetime(2030, 3, 14, 12, 0)


@pytest.mark.asyncio
async def test_update_event_by_creator_only(make_user) -> None:
    creator = await make_user("host@example.org")
    other = await make_user("other@example.org")
    admin = await make_user("boss@example.org", role=Role.admin)
    event = await EventService(client=creator.client).create_event(
        actor=creator.principal, title="Draft", event_time=WHEN
    )

    with pytest.raises(PermissionDeniedError):
        await EventService(client=other.client).update_event(
            actor=other.principal, event_id=event.id, title="Hijacked"
        )
    with pytest.raises(ValidationError):
        await EventService(client=creator.client).update_event(
            actor=creator.principal, event_id=event.id, creator_id=other.id
        )

    updated = await EventService(client=creator.client).update_event(
        actor=creator.principal, event_id=event.id, title="Final", max_participants=None
    )
    assert updated.title == "Final"
    assert updated.unlimited

    by_admin = await EventService(client=admin.client).update_event(
        actor=admin.principal, event_id=event.id, location="Hall B"
    )
    assert by_admin.location == "Hall B"


@pytest.mark.asyncio
async def test_delete_event_removes_join_requests(make_user) -> None:
    creator = await make_user("host@example.org")
    member = await make_user("guest@example.org")
    events = EventService(client=creator.client)
    event = await events.create_event(actor=creator.principal, title="Gone", event_time=WHEN)
    participation = ParticipationService(client=member.client)
    await participation.request_join(actor=member.principal, event_id=event.id)

    with pytest.raises(PermissionDeniedError):
        await EventService(client=member.client).delete_event(actor=member.principal, event_id=event.id)

    await events.delete_event(actor=creator.principal, event_id=event.id)

    with pytest.raises(NotFoundError):
        await events.get_event(event.id)
    assert await participation.get(event.id, member.id) is None


@pytest.mark.asyncio
async def test_participants_view(make_user) -> None:
    creator = await make_user("host@example.org")
    member = await make_user("guest@example.org", full_name="Guest")
    event = await EventService(client=creator.client).create_event(
        actor=creator.principal, title="Open day", event_time=WHEN
    )
    await ParticipationService(client=member.client).request_join(
        actor=member.principal, event_id=event.id
    )

    [view] = await EventService(client=creator.client).participants(
        actor=creator.principal, event_id=event.id
    )
    assert view.participation.user_id == member.id
    assert view.full_name == "Guest"
    assert view.email == "guest@example.org"

    with pytest.raises(PermissionDeniedError):
        await EventService(client=member.client).participants(actor=member.principal, event_id=event.id)


# ---- messages --------------------------------------------------------------


@pytest.mark.asyncio
async def test_send_and_read_message(make_user) -> None:
    alice = await make_user("alice@example.org")
    bob = await make_user("bob@example.org")
    messages = MessageService(client=alice.client)

    sent = await messages.send(
        actor=alice.principal, recipient_email=" BOB@example.org ", subject="Hi", content="Lunch?"
    )

    assert sent.receiver_id == bob.id
    assert sent.message_type is MessageType.text
    assert [m.id for m in await messages.sent(actor=alice.principal)] == [sent.id]
    inbox = await MessageService(client=bob.client).inbox(actor=bob.principal)
    assert [m.id for m in inbox] == [sent.id]
    assert not inbox[0].is_read

    with pytest.raises(PermissionDeniedError):
        await messages.mark_read(actor=alice.principal, message_id=sent.id)
    read = await MessageService(client=bob.client).mark_read(actor=bob.principal, message_id=sent.id)
    assert read.is_read


@pytest.mark.asyncio
async def test_send_message_errors(make_user) -> None:
    alice = await make_user("alice@example.org")
    messages = MessageService(client=alice.client)

    with pytest.raises(RecipientNotFoundError):
        await messages.send(
            actor=alice.principal, recipient_email="nobody@example.org", subject="Hi", content=""
        )
    with pytest.raises(ValidationError):
        await messages.send(
            actor=alice.principal, recipient_email="alice@example.org", subject=" ", content=""
        )
    with pytest.raises(NotFoundError):
        await messages.mark_read(actor=alice.principal, message_id="missing")


@pytest.mark.asyncio
async def test_directory_lists_members(make_user) -> None:
    alice = await make_user("alice@example.org", full_name="Alice")
    await make_user("bob@example.org", full_name="Bob")
    names = [p.full_name for p in await MessageService(client=alice.client).directory()]
    assert names == ["Alice", "Bob"]


@pytest.mark.asyncio
async def test_application_messages_show_current_request_status(make_user) -> None:
    creator = await make_user("host@example.org")
    member = await make_user("guest@example.org")
    event = await EventService(client=creator.client).create_event(
        actor=creator.principal, title="Workshop", event_time=WHEN
    )
    await ParticipationService(client=member.client).request_join(
        actor=member.principal, event_id=event.id
    )
    messages = MessageService(client=creator.client)

    inbox = await messages.inbox(actor=creator.principal)
    [notice] = inbox
    assert await messages.application_statuses(inbox) == {notice.id: ParticipationStatus.pending}

    await ParticipationService(client=creator.client).moderate(
        actor=creator.principal, event_id=event.id, user_id=member.id, decision="approved"
    )
    assert await messages.application_statuses(inbox) == {notice.id: ParticipationStatus.approved}

    await EventService(client=creator.client).delete_event(actor=creator.principal, event_id=event.id)
    assert await messages.application_statuses(inbox) == {notice.id: None}


# ---- membership applications -----------------------------------------------


@pytest.mark.asyncio
async def test_application_approval_activates_membership(make_user) -> None:
    member = await make_user("applicant@example.org", full_name="Applicant")
    admin = await make_user("admin@example.org", role=Role.admin)
    applications = ApplicationService(client=member.client)

    application = await applications.submit(
        actor=member.principal, reason="想加入协会", membership_level="gold"
    )
    assert application.status is ApplicationStatus.pending
    assert application.details() == {"reason": "想加入协会", "membership_level": "gold"}
    assert "想加入协会" in application.content
    members = MemberAdminService(client=admin.client)
    [profile] = [p for p in await members.list_members(actor=admin.principal) if p.id == member.id]
    assert profile.membership_status is MembershipStatus.pending

    reviewed = await ApplicationService(client=admin.client).review(
        actor=admin.principal, application_id=application.id, decision="approved"
    )

    assert reviewed.status is ApplicationStatus.approved
    [profile] = [p for p in await members.list_members(actor=admin.principal) if p.id == member.id]
    assert profile.membership_status is MembershipStatus.active
    assert profile.membership_level == "gold"
    assert profile.join_date == datetime.now(UTC).date()

    with pytest.raises(InvalidTransitionError):
        await ApplicationService(client=admin.client).review(
            actor=admin.principal, application_id=application.id, decision="rejected"
        )


@pytest.mark.asyncio
async def test_rejection_keeps_active_member_active(make_user) -> None:
    member = await make_user("applicant@example.org")
    admin = await make_user("admin@example.org", role=Role.admin)
    applications = ApplicationService(client=member.client)
    reviewer = ApplicationService(client=admin.client)

    first = await applications.submit(actor=member.principal, reason="join")
    await reviewer.review(actor=admin.principal, application_id=first.id, decision="approved")
    upgrade = await applications.submit(
        actor=member.principal, reason="upgrade please", membership_level="platinum"
    )
    await reviewer.review(actor=admin.principal, application_id=upgrade.id, decision="rejected")

    [profile] = [
        p
        for p in await MemberAdminService(client=admin.client).list_members(actor=admin.principal)
        if p.id == member.id
    ]
    assert profile.membership_status is MembershipStatus.active
    assert [a.status for a in await applications.my_applications(actor=member.principal)] == [
        ApplicationStatus.rejected,
        ApplicationStatus.approved,
    ]


@pytest.mark.asyncio
async def test_application_rules(make_user) -> None:
    member = await make_user("applicant@example.org")
    admin = await make_user("admin@example.org", role=Role.admin)
    applications = ApplicationService(client=member.client)

    with pytest.raises(ValidationError):
        await applications.submit(actor=member.principal, reason="   ")
    application = await applications.submit(actor=member.principal, reason="join")

    with pytest.raises(PermissionDeniedError):
        await applications.list_applications(actor=member.principal)
    with pytest.raises(PermissionDeniedError):
        await applications.review(
            actor=member.principal, application_id=application.id, decision="approved"
        )

    reviewer = ApplicationService(client=admin.client)
    assert [a.id for a in await reviewer.list_applications(actor=admin.principal)] == [application.id]
    with pytest.raises(ValidationError):
        await reviewer.review(actor=admin.principal, application_id=application.id, decision="pending")
    with pytest.raises(NotFoundError):
        await reviewer.review(actor=admin.principal, application_id="missing", decision="approved")


# ---- member administration -------------------------------------------------


@pytest.mark.asyncio
async def test_admin_edits_member(make_user) -> None:
    member = await make_user("member@example.org")
    admin = await make_user("admin@example.org", role=Role.admin)
    members = MemberAdminService(client=admin.client)

    updated = await members.update_member(
        actor=admin.principal,
        member_id=member.id,
        role="admin",
        membership_level="silver",
        membership_duration_days=365,
    )

    assert updated.role is Role.admin
    assert updated.membership_level == "silver"
    assert updated.membership_duration_days == 365


@pytest.mark.asyncio
async def test_member_admin_rules(make_user) -> None:
    member = await make_user("member@example.org")
    admin = await make_user("admin@example.org", role=Role.admin)
    members = MemberAdminService(client=admin.client)

    with pytest.raises(PermissionDeniedError):
        await MemberAdminService(client=member.client).list_members(actor=member.principal)
    with pytest.raises(ValidationError):
        await members.update_member(actor=admin.principal, member_id=member.id, role="owner")
    with pytest.raises(ValidationError):
        await members.update_member(
            actor=admin.principal, member_id=member.id, membership_duration_days=-1
        )
    with pytest.raises(ValidationError):
        await members.update_member(actor=admin.principal, member_id=member.id)
    with pytest.raises(NotFoundError):
        await members.update_member(actor=admin.principal, member_id="ghost", role="member")


# ---- accounts --------------------------------------------------------------


@pytest.mark.asyncio
async def test_register_outcomes(backend, settings) -> None:
    accounts = AccountService(client=backend.client(), settings=settings)

    created = await accounts.register(email="new@example.org", password=PASSWORD, full_name="New")
    assert created.outcome is RegistrationOutcome.created
    assert created.identity_id is not None

    again = await AccountService(client=backend.client(), settings=settings).register(
        email="new@example.org", password=PASSWORD, full_name="New"
    )
    assert again.outcome is RegistrationOutcome.already_registered

    with pytest.raises(ValidationError):
        await accounts.register(email="short@example.org", password="12345", full_name="Short")
    with pytest.raises(ValidationError):
        await accounts.register(email="not-an-email", password=PASSWORD, full_name="X")
    with pytest.raises(ValidationError):
        await accounts.register(email="blank@example.org", password=PASSWORD, full_name="  ")


@pytest.mark.asyncio
async def test_register_without_auto_confirm(settings) -> None:
    from assoc_portal.backend.local import LocalBackend

    backend = LocalBackend(settings=settings.model_copy(update={"auto_confirm_signups": False}))
    await backend.start()
    try:
        result = await AccountService(client=backend.client(), settings=settings).register(
            email="wait@example.org", password=PASSWORD, full_name="Wait"
        )
        assert result.outcome is RegistrationOutcome.confirmation_required
    finally:
        await backend.close()


@pytest.mark.asyncio
async def test_sign_in_lands_by_role(make_user, backend, settings) -> None:
    await make_user("member@example.org")
    await make_user("admin@example.org", role=Role.admin)

    member = await AccountService(client=backend.client(), settings=settings).sign_in(
        email="member@example.org", password=PASSWORD
    )
    admin = await AccountService(client=backend.client(), settings=settings).sign_in(
        email="admin@example.org", password=PASSWORD
    )

    assert member.landing == "/member"
    assert admin.landing == "/admin"


@pytest.mark.asyncio
async def test_sign_in_rejects_wrong_password(make_user, backend, settings) -> None:
    await make_user("member@example.org")
    with pytest.raises(AuthenticationFailedError):
        await AccountService(client=backend.client(), settings=settings).sign_in(
            email="member@example.org", password="wrong-pass"
        )


@pytest.mark.asyncio
async def test_password_reset_flow(make_user, backend, settings) -> None:
    await make_user("forgetful@example.org")
    client = backend.client()
    accounts = AccountService(client=client, settings=settings)

    await accounts.request_password_reset(email="forgetful@example.org")
    link = backend.recovery_links["forgetful@example.org"]
    assert link.startswith(f"{settings.public_base_url.rstrip('/')}/reset-password")
    token = link.split("token=", 1)[1]

    with pytest.raises(AuthenticationFailedError):
        await accounts.reset_password(password="new-password", confirmation="new-password")

    identity = await accounts.verify_recovery(token=token)
    assert identity.email == "forgetful@example.org"
    with pytest.raises(ValidationError):
        await accounts.reset_password(password="new-password", confirmation="other-password")
    await accounts.reset_password(password="new-password", confirmation="new-password")

    result = await AccountService(client=backend.client(), settings=settings).sign_in(
        email="forgetful@example.org", password="new-password"
    )
    assert result.identity.id == identity.id


@pytest.mark.asyncio
async def test_invalid_recovery_link(backend, settings) -> None:
    with pytest.raises(AuthenticationFailedError):
        await AccountService(client=backend.client(), settings=settings).verify_recovery(
            token="garbage"
        )


@pytest.mark.asyncio
async def test_change_email(make_user, settings) -> None:
    user = await make_user("before@example.org")
    accounts = AccountService(client=user.client, settings=settings)

    identity = await accounts.change_email(new_email="after@example.org")

    assert identity.email == "after@example.org"
    with pytest.raises(ValidationError):
        await accounts.change_email(new_email="nope")
