"""
assoc_portal.backend.local

Self-hosted Remote Data Service over async SQLAlchemy.

Responsibilities:
- Serve the portal tables through the `TableQuery` contract (SQLAlchemy Core).
- Own credentials: argon2 password hashes, HS256 access and recovery tokens.
- Run the sign-up trigger that creates a `profiles` row (optionally delayed).
- Publish every committed row change to the realtime hub.
- Hand out per-caller `LocalClient` handles holding one auth session each.
"""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Callable, Mapping
from datetime import UTC, datetime, timedelta
from typing import Any

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError
from sqlalchemy import Table, delete, insert, select, text, update
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError
from sqlalchemy.ext.asyncio import AsyncEngine

from assoc_portal.auth.jwt import JwtConfig, JwtValidationError, decode_and_validate, issue_token
from assoc_portal.backend.contract import (
    TABLES,
    AuthChangeEvent,
    AuthListener,
    AuthResponse,
    AuthSession,
    ChangeEvent,
    Identity,
)
from assoc_portal.backend.errors import (
    MULTIPLE_ROWS,
    UNDEFINED_COLUMN,
    UNDEFINED_TABLE,
    AuthApiError,
    BackendError,
    ConflictError,
    ConnectivityError,
    NotFoundError,
)
from assoc_portal.backend.query import Filter, QuerySpec, TableQuery
from assoc_portal.backend.realtime import RealtimeChannel, RealtimeHub
from assoc_portal.db.base import Base
from assoc_portal.db.init_db import init_db
from assoc_portal.db.models import AuthUser, MembershipStatus
from assoc_portal.db.session import create_engine, create_sessionmaker
from assoc_portal.observability.logging import get_logger
from assoc_portal.settings import Settings

log = get_logger(__name__)


class LocalBackend:
    """
    Server side of the local Remote Data Service. One instance per process; callers
    talk to it through `client()`.
    """

    def __init__(self, *, settings: Settings, engine: AsyncEngine | None = None) -> None:
        self._settings = settings
        self._engine = engine or create_engine(settings)
        self._sessions = create_sessionmaker(self._engine)
        self._jwt = JwtConfig.from_settings(settings)
        self._hasher = PasswordHasher()
        # SQLite allows one writer; serialize statements so transactions never interleave.
        self._lock = asyncio.Lock()
        self._triggers: set[asyncio.Task[None]] = set()
        self._revoked: set[str] = set()
        self.realtime = RealtimeHub()
        # Recovery links are logged rather than mailed; the latest one per address is kept.
        self.recovery_links: dict[str, str] = {}

    async def start(self) -> None:
        if self._settings.env in ("dev", "test"):
            # Dev/test convenience: create tables automatically. Prod uses Alembic migrations.
            await init_db(self._engine)

    async def close(self) -> None:
        for task in list(self._triggers):
            task.cancel()
        for task in list(self._triggers):
            with contextlib.suppress(asyncio.CancelledError):
                await task
        await self._engine.dispose()

    async def ping(self) -> None:
        try:
            async with self._sessions() as session:
                await session.execute(text("SELECT 1"))
        except (OperationalError, OSError) as e:
            raise ConnectivityError(str(e)) from e

    def client(self) -> LocalClient:
        return LocalClient(self)

    @property
    def auto_confirm(self) -> bool:
        return self._settings.auto_confirm_signups

    # -- auth --------------------------------------------------------------

    async def create_user(
        self, *, email: str, password: str, metadata: Mapping[str, Any]
    ) -> Identity:
        email = _normalize_email(email)
        password_hash = await asyncio.to_thread(self._hasher.hash, password)
        async with self._lock:
            try:
                async with self._sessions() as session, session.begin():
                    exists = await session.execute(
                        select(AuthUser.id).where(AuthUser.email == email)
                    )
                    if exists.scalar_one_or_none() is not None:
                        raise AuthApiError("User already registered", code="user_already_exists")
                    user = AuthUser(
                        email=email,
                        password_hash=password_hash,
                        user_metadata=dict(metadata),
                        email_confirmed=self._settings.auto_confirm_signups,
                    )
                    session.add(user)
                    await session.flush()
                    identity = _identity(user)
            except IntegrityError as e:
                raise AuthApiError("User already registered", code="user_already_exists") from e
            except OperationalError as e:
                raise ConnectivityError(str(e)) from e

        log.info("user_created", identity_id=identity.id)
        self._schedule_profile_trigger(identity)
        return identity

    async def authenticate(self, *, email: str, password: str) -> Identity:
        user = await self._user_by(email=_normalize_email(email))
        if user is None or not await self._verify(user.password_hash, password):
            raise AuthApiError("Invalid login credentials", code="invalid_credentials")
        if not user.email_confirmed:
            raise AuthApiError("Email not confirmed", code="email_not_confirmed")
        return _identity(user)

    def issue_session(self, identity: Identity) -> AuthSession:
        ttl = timedelta(minutes=self._settings.access_token_ttl_minutes)
        token = issue_token(cfg=self._jwt, subject=identity.id, email=identity.email, ttl=ttl)
        return AuthSession(
            access_token=token,
            identity=identity,
            expires_at=datetime.now(tz=UTC) + ttl,
        )

    def validate_session(self, session: AuthSession) -> bool:
        try:
            payload = decode_and_validate(cfg=self._jwt, token=session.access_token)
        except JwtValidationError:
            return False
        return payload.get("jti") not in self._revoked

    def revoke(self, session: AuthSession) -> None:
        try:
            payload = decode_and_validate(cfg=self._jwt, token=session.access_token)
        except JwtValidationError:
            return
        self._revoked.add(str(payload.get("jti")))

    async def send_recovery(self, *, email: str, redirect_to: str) -> None:
        user = await self._user_by(email=_normalize_email(email))
        if user is None:
            # Same outcome as a known address; callers must not learn which emails exist.
            log.info("recovery_requested_unknown_email")
            return
        token = issue_token(
            cfg=self._jwt,
            subject=user.id,
            email=user.email,
            purpose="recovery",
            ttl=timedelta(minutes=self._settings.recovery_token_ttl_minutes),
        )
        link = f"{redirect_to}?token={token}"
        self.recovery_links[user.email] = link
        log.info("recovery_link_issued", identity_id=user.id, redirect_to=redirect_to)

    async def redeem_recovery(self, token: str) -> Identity:
        try:
            payload = decode_and_validate(cfg=self._jwt, token=token, purpose="recovery")
        except JwtValidationError as e:
            raise AuthApiError(f"Invalid or expired recovery link: {e}", code="otp_expired") from e
        user = await self._user_by(user_id=str(payload["sub"]))
        if user is None:
            raise AuthApiError("User not found", code="user_not_found")
        return _identity(user)

    async def update_credentials(
        self, identity_id: str, *, email: str | None, password: str | None
    ) -> Identity:
        password_hash = (
            await asyncio.to_thread(self._hasher.hash, password) if password is not None else None
        )
        async with self._lock:
            try:
                async with self._sessions() as session, session.begin():
                    user = await session.get(AuthUser, identity_id)
                    if user is None:
                        raise AuthApiError("User not found", code="user_not_found")
                    if email is not None:
                        user.email = _normalize_email(email)
                    if password_hash is not None:
                        user.password_hash = password_hash
                    await session.flush()
                    identity = _identity(user)
            except IntegrityError as e:
                raise AuthApiError("Email already in use", code="email_exists") from e
            except OperationalError as e:
                raise ConnectivityError(str(e)) from e
        if email is not None:
            # Keep the denormalized profile email in step with the credential.
            await self.execute(
                QuerySpec(
                    table="profiles",
                    action="update",
                    filters=[Filter("id", "eq", identity_id)],
                    values=[{"email": identity.email}],
                )
            )
        return identity

    async def _user_by(
        self, *, email: str | None = None, user_id: str | None = None
    ) -> AuthUser | None:
        try:
            async with self._sessions() as session:
                if user_id is not None:
                    return await session.get(AuthUser, user_id)
                stmt = select(AuthUser).where(AuthUser.email == email)
                return (await session.execute(stmt)).scalar_one_or_none()
        except OperationalError as e:
            raise ConnectivityError(str(e)) from e

    async def _verify(self, password_hash: str, password: str) -> bool:
        try:
            return await asyncio.to_thread(self._hasher.verify, password_hash, password)
        except (VerificationError, InvalidHashError):
            return False

    # -- sign-up trigger ---------------------------------------------------

    def _schedule_profile_trigger(self, identity: Identity) -> None:
        task = asyncio.create_task(
            self._run_profile_trigger(identity), name=f"profile-trigger:{identity.id}"
        )
        self._triggers.add(task)
        task.add_done_callback(self._triggers.discard)

    async def _run_profile_trigger(self, identity: Identity) -> None:
        delay = self._settings.profile_trigger_delay_seconds
        if delay > 0:
            await asyncio.sleep(delay)
        meta = identity.metadata
        try:
            await self.execute(
                QuerySpec(
                    table="profiles",
                    action="insert",
                    values=[
                        {
                            "id": identity.id,
                            "email": identity.email,
                            "full_name": str(meta.get("full_name") or ""),
                            "phone": meta.get("phone"),
                            "institution": meta.get("institution"),
                            "membership_status": MembershipStatus.inactive,
                        }
                    ],
                )
            )
        except BackendError:
            log.exception("profile_trigger_failed", identity_id=identity.id)
            return
        log.info("profile_created", identity_id=identity.id, delay=delay)

    async def wait_for_triggers(self) -> None:
        """Wait until every scheduled profile trigger has run (tests, seeding)."""

        while pending := [t for t in self._triggers if not t.done()]:
            await asyncio.gather(*pending, return_exceptions=True)

    # -- tables ------------------------------------------------------------

    async def execute(self, spec: QuerySpec) -> Any:
        table = _table(spec.table)
        async with self._lock:
            try:
                async with self._sessions() as session, session.begin():
                    rows, changes = await self._run(session, table, spec)
            except IntegrityError as e:
                raise ConflictError(f"duplicate key value violates unique constraint: {e.orig}") from e
            except OperationalError as e:
                raise ConnectivityError(str(e)) from e
            except DBAPIError as e:
                if e.connection_invalidated:
                    raise ConnectivityError(str(e)) from e
                raise BackendError(str(e.orig)) from e

        # Publish only after commit.
        for change in changes:
            self.realtime.publish(change)
        return _shape(rows, spec)

    async def _run(
        self, session: Any, table: Table, spec: QuerySpec
    ) -> tuple[list[dict[str, Any]], list[ChangeEvent]]:
        where = [_condition(table, f) for f in spec.filters]

        if spec.action == "select":
            cols = list(table.c) if spec.columns == ("*",) else [_column(table, c) for c in spec.columns]
            stmt = select(*cols).where(*where)
            for order in spec.orders:
                col = _column(table, order.column)
                stmt = stmt.order_by(col.asc() if order.ascending else col.desc())
            if spec.limit is not None:
                stmt = stmt.limit(spec.limit)
            result = await session.execute(stmt)
            return [dict(r._mapping) for r in result], []

        if spec.action == "insert":
            rows = []
            for values in spec.values:
                _check_columns(table, values)
                result = await session.execute(insert(table).values(**values).returning(*table.c))
                rows.append(dict(result.one()._mapping))
            return rows, [ChangeEvent(spec.table, "INSERT", new=r, old=None) for r in rows]

        # update/delete: read the affected rows first so change events carry `old`.
        before = [
            dict(r._mapping) for r in await session.execute(select(*table.c).where(*where))
        ]
        if spec.action == "update":
            patch = spec.values[0] if spec.values else {}
            if not patch:
                raise BackendError("update requires at least one column")
            _check_columns(table, patch)
            if not before:
                return [], []
            result = await session.execute(
                update(table).where(*where).values(**patch).returning(*table.c)
            )
            after = [dict(r._mapping) for r in result]
            old_by_id = {r["id"]: r for r in before}
            return after, [
                ChangeEvent(spec.table, "UPDATE", new=r, old=old_by_id.get(r["id"])) for r in after
            ]

        await session.execute(delete(table).where(*where))
        return before, [ChangeEvent(spec.table, "DELETE", new=None, old=r) for r in before]


class LocalClient:
    """
    Client side: one auth session plus its listeners. Mirrors a browser-side SDK
    instance; every portal user gets their own.
    """

    def __init__(self, backend: LocalBackend) -> None:
        self._backend = backend
        self._session: AuthSession | None = None
        self._listeners: list[AuthListener] = []

    async def get_session(self) -> AuthSession | None:
        if self._session is not None and not self._backend.validate_session(self._session):
            log.info("session_expired", identity_id=self._session.identity.id)
            self._set_session(None, AuthChangeEvent.signed_out)
        return self._session

    def on_auth_state_change(self, listener: AuthListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            with contextlib.suppress(ValueError):
                self._listeners.remove(listener)

        return unsubscribe

    async def sign_in_with_password(self, email: str, password: str) -> AuthResponse:
        identity = await self._backend.authenticate(email=email, password=password)
        session = self._backend.issue_session(identity)
        self._set_session(session, AuthChangeEvent.signed_in)
        return AuthResponse(identity=identity, session=session)

    async def sign_up(
        self, email: str, password: str, metadata: Mapping[str, Any] | None = None
    ) -> AuthResponse:
        identity = await self._backend.create_user(
            email=email, password=password, metadata=metadata or {}
        )
        if not self._backend.auto_confirm:
            return AuthResponse(identity=identity, session=None)
        session = self._backend.issue_session(identity)
        self._set_session(session, AuthChangeEvent.signed_in)
        return AuthResponse(identity=identity, session=session)

    async def sign_out(self) -> None:
        if self._session is None:
            return
        self._backend.revoke(self._session)
        self._set_session(None, AuthChangeEvent.signed_out)

    async def reset_password_for_email(self, email: str, redirect_to: str) -> None:
        await self._backend.send_recovery(email=email, redirect_to=redirect_to)

    async def verify_recovery(self, token: str) -> AuthResponse:
        identity = await self._backend.redeem_recovery(token)
        session = self._backend.issue_session(identity)
        self._set_session(session, AuthChangeEvent.password_recovery)
        return AuthResponse(identity=identity, session=session)

    async def update_user(
        self, *, email: str | None = None, password: str | None = None
    ) -> Identity:
        current = await self.get_session()
        if current is None:
            raise AuthApiError("Auth session missing", code="session_not_found")
        identity = await self._backend.update_credentials(
            current.identity.id, email=email, password=password
        )
        session = AuthSession(
            access_token=current.access_token,
            identity=identity,
            expires_at=current.expires_at,
        )
        self._set_session(session, AuthChangeEvent.user_updated)
        return identity

    def table(self, name: str) -> TableQuery:
        return TableQuery(name, executor=self._backend.execute)

    def channel(self, scope_key: str) -> RealtimeChannel:
        return RealtimeChannel(hub=self._backend.realtime, scope_key=scope_key)

    def _set_session(self, session: AuthSession | None, event: AuthChangeEvent) -> None:
        self._session = session
        for listener in list(self._listeners):
            try:
                listener(event, session)
            except Exception:
                log.exception("auth_listener_failed", auth_event=event.value)


def _identity(user: AuthUser) -> Identity:
    return Identity(id=user.id, email=user.email, metadata=dict(user.user_metadata or {}))


def _normalize_email(email: str) -> str:
    return email.strip().lower()


def _table(name: str) -> Table:
    if name not in TABLES:
        raise BackendError(f'relation "{name}" does not exist', code=UNDEFINED_TABLE)
    return Base.metadata.tables[name]


def _column(table: Table, name: str) -> Any:
    try:
        return table.c[name]
    except KeyError:
        raise BackendError(
            f'column {table.name}.{name} does not exist', code=UNDEFINED_COLUMN
        ) from None


def _check_columns(table: Table, values: Mapping[str, Any]) -> None:
    for name in values:
        _column(table, name)


def _condition(table: Table, f: Filter) -> Any:
    col = _column(table, f.column)
    if f.op == "eq":
        return col.is_(None) if f.value is None else col == f.value
    if f.op == "neq":
        return col.is_not(None) if f.value is None else col != f.value
    return col.in_(list(f.value))


def _shape(rows: list[dict[str, Any]], spec: QuerySpec) -> Any:
    if spec.cardinality == "many":
        return rows
    if len(rows) > 1:
        raise BackendError(
            "JSON object requested, multiple (or no) rows returned", code=MULTIPLE_ROWS
        )
    if not rows:
        if spec.cardinality == "single":
            raise NotFoundError("JSON object requested, multiple (or no) rows returned")
        return None
    return rows[0]


# --- Module Notes -----------------------------------------------------------
# There is no row-level security here: authorization is enforced by the portal
# services, which check the acting principal before every write.
