"""
assoc_portal.backend.contract

The Remote Data Service contract consumed by the portal.

Responsibilities:
- Describe the auth operations (session issuance, listeners, password flows).
- Describe table access (query builder) and change-feed channels.
- Define the value types that cross the boundary.

The hosted service behind this contract owns storage, realtime delivery and token
format; the portal only ever sees the shapes defined here.
"""

from __future__ import annotations

import enum
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any, Literal, Protocol

if TYPE_CHECKING:
    from assoc_portal.backend.query import TableQuery

TABLES = ("profiles", "applications", "events", "event_participants", "messages")

ChangeType = Literal["INSERT", "UPDATE", "DELETE"]
ChangeFilter = Literal["*", "INSERT", "UPDATE", "DELETE"]


@dataclass(frozen=True, slots=True)
class Identity:
    """
    Authenticated principal issued by the backend. Opaque apart from id and email.
    """

    id: str
    email: str
    metadata: Mapping[str, Any] = field(default_factory=dict, compare=False)


@dataclass(frozen=True, slots=True)
class AuthSession:
    access_token: str = field(repr=False)
    identity: Identity
    expires_at: datetime


@dataclass(frozen=True, slots=True)
class AuthResponse:
    identity: Identity | None
    # None after sign-up when the address still has to be confirmed.
    session: AuthSession | None


class AuthChangeEvent(enum.StrEnum):
    signed_in = "SIGNED_IN"
    signed_out = "SIGNED_OUT"
    token_refreshed = "TOKEN_REFRESHED"
    user_updated = "USER_UPDATED"
    password_recovery = "PASSWORD_RECOVERY"


@dataclass(frozen=True, slots=True)
class ChangeEvent:
    table: str
    type: ChangeType
    new: Mapping[str, Any] | None
    old: Mapping[str, Any] | None


AuthListener = Callable[[AuthChangeEvent, AuthSession | None], None]
ChangeCallback = Callable[[ChangeEvent], None]


class Subscription(Protocol):
    def unsubscribe(self) -> None: ...


class Channel(Protocol):
    def on(
        self,
        event: ChangeFilter,
        *,
        table: str,
        filter: str | None = None,
        callback: ChangeCallback,
    ) -> Channel: ...

    def subscribe(self) -> Subscription: ...


class RemoteDataService(Protocol):
    """
    Per-caller handle on the backend. Holds at most one auth session at a time.
    """

    async def get_session(self) -> AuthSession | None: ...

    def on_auth_state_change(self, listener: AuthListener) -> Callable[[], None]: ...

    async def sign_in_with_password(self, email: str, password: str) -> AuthResponse: ...

    async def sign_up(
        self, email: str, password: str, metadata: Mapping[str, Any] | None = None
    ) -> AuthResponse: ...

    async def sign_out(self) -> None: ...

    async def reset_password_for_email(self, email: str, redirect_to: str) -> None: ...

    async def verify_recovery(self, token: str) -> AuthResponse: ...

    async def update_user(
        self, *, email: str | None = None, password: str | None = None
    ) -> Identity: ...

    def table(self, name: str) -> TableQuery: ...

    def channel(self, scope_key: str) -> Channel: ...


# --- Module Notes -----------------------------------------------------------
# Listeners and change callbacks are plain synchronous callables, invoked on the
# event loop; consumers that need to do async work enqueue it themselves.
