"""
tests.conftest

Shared fixtures.

Responsibilities:
- Test settings (in-memory SQLite, short hydration delays).
- A started `LocalBackend` per test and a factory for signed-up users.
- `FakeRemote`: a scripted Remote Data Service for session/hydration tests.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest
import pytest_asyncio

from assoc_portal.auth.models import Principal, Role
from assoc_portal.backend.contract import AuthChangeEvent, AuthSession, ChangeEvent, Identity
from assoc_portal.backend.errors import BackendError, NotFoundError
from assoc_portal.backend.local import LocalBackend, LocalClient
from assoc_portal.backend.query import QuerySpec, TableQuery
from assoc_portal.backend.realtime import RealtimeChannel, RealtimeHub
from assoc_portal.settings import Settings

PASSWORD = "correct-horse"


@pytest.fixture
def settings() -> Settings:
    return Settings(
        env="test",
        database_url="sqlite+aiosqlite://",
        jwt_secret="test-secret-0123456789abcdef0123456789",
        log_level="WARNING",
        profile_retry_delay_seconds=0.01,
        session_settle_timeout_seconds=2.0,
    )


@pytest_asyncio.fixture
async def backend(settings: Settings) -> AsyncIterator[LocalBackend]:
    b = LocalBackend(settings=settings)
    await b.start()
    try:
        yield b
    finally:
        await b.close()


@dataclass
class User:
    client: LocalClient
    principal: Principal

    @property
    def id(self) -> str:
        return self.principal.subject


UserFactory = Callable[..., Awaitable[User]]


@pytest.fixture
def make_user(backend: LocalBackend) -> UserFactory:
    async def _make(
        email: str, *, full_name: str = "", role: Role = Role.member, password: str = PASSWORD
    ) -> User:
        client = backend.client()
        response = await client.sign_up(email, password, {"full_name": full_name or email})
        await backend.wait_for_triggers()
        assert response.identity is not None
        if role is Role.admin:
            await (
                client.table("profiles")
                .update({"role": Role.admin.value})
                .eq("id", response.identity.id)
                .execute()
            )
        principal = Principal(subject=response.identity.id, email=response.identity.email, role=role)
        return User(client=client, principal=principal)

    return _make


def make_session(identity: Identity) -> AuthSession:
    return AuthSession(
        access_token="token-" + identity.id,
        identity=identity,
        expires_at=datetime.now(tz=UTC) + timedelta(hours=1),
    )


def profile_row(identity_id: str, **overrides: Any) -> dict[str, Any]:
    row: dict[str, Any] = {
        "id": identity_id,
        "email": f"{identity_id}@example.org",
        "full_name": identity_id.title(),
        "role": "member",
        "membership_status": "inactive",
        "membership_duration_days": 0,
    }
    row.update(overrides)
    return row


class FakeRemote:
    """
    Scripted stand-in for a Remote Data Service.

    Profile lookups consume `profile_script` first (a row dict or an exception per
    call), then fall back to `profile_rows`; a missing row raises `NotFoundError`.
    """

    row = staticmethod(profile_row)

    def __init__(self) -> None:
        self.session: AuthSession | None = None
        self.listeners: list[Any] = []
        self.profile_script: list[dict[str, Any] | Exception] = []
        self.profile_rows: dict[str, dict[str, Any]] = {}
        self.lookups: list[str] = []
        self.hub = RealtimeHub()
        self.get_session_error: BackendError | None = None
        self.sign_out_error: BackendError | None = None

    async def get_session(self) -> AuthSession | None:
        if self.get_session_error is not None:
            raise self.get_session_error
        return self.session

    def on_auth_state_change(self, listener: Any) -> Callable[[], None]:
        self.listeners.append(listener)
        return lambda: self.listeners.remove(listener)

    def emit(self, event: AuthChangeEvent, session: AuthSession | None) -> None:
        self.session = session
        for listener in list(self.listeners):
            listener(event, session)

    def sign_in(self, identity: Identity) -> None:
        self.emit(AuthChangeEvent.signed_in, make_session(identity))

    async def sign_out(self) -> None:
        if self.sign_out_error is not None:
            raise self.sign_out_error
        self.emit(AuthChangeEvent.signed_out, None)

    def publish_profile(self, row: dict[str, Any]) -> None:
        self.hub.publish(ChangeEvent("profiles", "UPDATE", new=row, old=None))

    def table(self, name: str) -> TableQuery:
        return TableQuery(name, executor=self._execute)

    def channel(self, scope_key: str) -> RealtimeChannel:
        return RealtimeChannel(hub=self.hub, scope_key=scope_key)

    async def _execute(self, spec: QuerySpec) -> Any:
        assert spec.table == "profiles"
        identity_id = next(f.value for f in spec.filters if f.column == "id")
        self.lookups.append(identity_id)
        if self.profile_script:
            item = self.profile_script.pop(0)
            if isinstance(item, Exception):
                raise item
            return item
        row = self.profile_rows.get(identity_id)
        if row is None:
            raise NotFoundError("JSON object requested, multiple (or no) rows returned")
        return row


@pytest.fixture
def remote() -> FakeRemote:
    return FakeRemote()


class SleepRecorder:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)

    @property
    def elapsed(self) -> float:
        return sum(self.delays)


@pytest.fixture
def sleeps() -> SleepRecorder:
    return SleepRecorder()
