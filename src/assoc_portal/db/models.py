"""
assoc_portal.db.models

Persistence schema served by the local backend.

Responsibilities:
- Define ORM models for the portal tables:
  - AuthUser: credential store owned by the auth side of the backend
  - Profile: one application-level record per identity
  - Application: membership / tier applications
  - Event and EventParticipant: event board and join requests
  - Message: directed in-app messages and workflow notifications
- Define the enumerations stored in those tables.
"""

from __future__ import annotations

import enum
import uuid
from datetime import UTC, date, datetime
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from assoc_portal.auth.models import Role
from assoc_portal.db.base import Base


def _utcnow() -> datetime:
    # Persist naive UTC timestamps; SQLite has no timezone-aware column type.
    return datetime.now(UTC).replace(tzinfo=None)


def _new_id() -> str:
    return str(uuid.uuid4())


def _str_enum(enum_cls: type[enum.Enum]) -> Enum:
    # Store enum values (not names) as plain strings so rows read back as text.
    return Enum(
        enum_cls,
        native_enum=False,
        values_callable=lambda members: [m.value for m in members],
        length=32,
    )


class MembershipStatus(enum.StrEnum):
    active = "active"
    pending = "pending"
    rejected = "rejected"
    inactive = "inactive"


class ApplicationStatus(enum.StrEnum):
    pending = "pending"
    approved = "approved"
    rejected = "rejected"


class ParticipationStatus(enum.StrEnum):
    pending = "pending"
    approved = "approved"
    rejected = "rejected"


class MessageType(enum.StrEnum):
    text = "text"
    event_application = "event_application"


class AuthUser(Base):
    __tablename__ = "auth_users"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    email: Mapped[str] = mapped_column(String(320), nullable=False, unique=True)
    password_hash: Mapped[str] = mapped_column(String(256), nullable=False)
    # Sign-up metadata (full_name, phone, institution) consumed by the profile trigger.
    user_metadata: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    email_confirmed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    created_at: Mapped[datetime] = mapped_column(nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(nullable=False, default=_utcnow, onupdate=_utcnow)


class Profile(Base):
    __tablename__ = "profiles"

    # Same id as the owning auth user.
    id: Mapped[str] = mapped_column(
        String(36), ForeignKey("auth_users.id"), primary_key=True
    )
    email: Mapped[str] = mapped_column(String(320), nullable=False, index=True)
    full_name: Mapped[str] = mapped_column(String(256), nullable=False, default="")
    role: Mapped[Role] = mapped_column(_str_enum(Role), nullable=False, default=Role.member)

    membership_level: Mapped[str | None] = mapped_column(String(64), nullable=True)
    membership_status: Mapped[MembershipStatus] = mapped_column(
        _str_enum(MembershipStatus), nullable=False, default=MembershipStatus.inactive
    )
    membership_duration_days: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    payment_status: Mapped[str | None] = mapped_column(String(64), nullable=True)
    join_date: Mapped[date | None] = mapped_column(nullable=True)

    phone: Mapped[str | None] = mapped_column(String(64), nullable=True)
    institution: Mapped[str | None] = mapped_column(String(256), nullable=True)

    created_at: Mapped[datetime] = mapped_column(nullable=False, default=_utcnow, index=True)


class Application(Base):
    __tablename__ = "applications"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("profiles.id"), nullable=False, index=True
    )
    full_name: Mapped[str] = mapped_column(String(256), nullable=False, default="")
    # JSON document serialized as text: {"reason": ..., "membership_level": ...}
    content: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[ApplicationStatus] = mapped_column(
        _str_enum(ApplicationStatus), nullable=False, default=ApplicationStatus.pending, index=True
    )

    created_at: Mapped[datetime] = mapped_column(nullable=False, default=_utcnow, index=True)


class Event(Base):
    __tablename__ = "events"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    creator_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("profiles.id"), nullable=False, index=True
    )
    title: Mapped[str] = mapped_column(String(256), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    location: Mapped[str] = mapped_column(String(256), nullable=False, default="")
    event_time: Mapped[datetime] = mapped_column(nullable=False, index=True)
    # 0 means unlimited.
    max_participants: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    created_at: Mapped[datetime] = mapped_column(nullable=False, default=_utcnow)


class EventParticipant(Base):
    __tablename__ = "event_participants"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    event_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("events.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("profiles.id"), nullable=False, index=True
    )
    status: Mapped[ParticipationStatus] = mapped_column(
        _str_enum(ParticipationStatus), nullable=False, default=ParticipationStatus.pending
    )

    created_at: Mapped[datetime] = mapped_column(nullable=False, default=_utcnow)

    __table_args__ = (
        # At most one join request per (event, user); concurrent joins race into this.
        UniqueConstraint("event_id", "user_id", name="uq_event_participants_event_user"),
        Index("ix_event_participants_event_status", "event_id", "status"),
    )


class Message(Base):
    __tablename__ = "messages"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    sender_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("profiles.id"), nullable=False, index=True
    )
    receiver_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("profiles.id"), nullable=False, index=True
    )
    subject: Mapped[str] = mapped_column(String(256), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False, default="")
    message_type: Mapped[MessageType] = mapped_column(
        _str_enum(MessageType), nullable=False, default=MessageType.text
    )
    related_entity_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    created_at: Mapped[datetime] = mapped_column(nullable=False, default=_utcnow, index=True)

    __table_args__ = (Index("ix_messages_receiver_created", "receiver_id", "created_at"),)


# --- Module Notes -----------------------------------------------------------
# Tables are addressed by name through the backend query builder; keep
# `__tablename__` values aligned with `backend.contract.TABLES`.
