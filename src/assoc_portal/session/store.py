"""
assoc_portal.session.store

The Session Store: single owner of `SessionState`.

Responsibilities:
- Resolve the initial session at startup and react to auth events in arrival
  order (one consumer task draining an `asyncio.Queue`).
- Start profile hydration for each new identity, keyed by identity, and drop
  results that arrive for an identity that is no longer current.
- Keep exactly one change-feed subscription on the current identity's profile row.
- Sign out: ask the backend, then always clear local state.
- Notify subscribers on every state change.

Errors never escape this class: they are logged and the state degrades to
"no session" / "no profile" so the portal stays usable (e.g. to sign in again).
"""

from __future__ import annotations

import asyncio
import contextlib
import dataclasses
from collections.abc import Callable

from pydantic import ValidationError

from assoc_portal.backend.contract import (
    AuthChangeEvent,
    AuthSession,
    ChangeEvent,
    Identity,
    RemoteDataService,
    Subscription,
)
from assoc_portal.backend.errors import BackendError
from assoc_portal.observability.logging import get_logger
from assoc_portal.schemas import Profile
from assoc_portal.session.hydration import HydrationOutcome, HydrationResult, ProfileHydrator
from assoc_portal.session.state import SessionState

log = get_logger(__name__)

StateListener = Callable[[SessionState], None]

# Queue sentinel; auth events carry `Identity | None`, so None cannot mark shutdown.
_STOP = object()


class SessionStore:
    def __init__(self, *, client: RemoteDataService, hydrator: ProfileHydrator | None = None) -> None:
        self._client = client
        self._hydrator = hydrator or ProfileHydrator(client=client)
        self._state = SessionState()
        self._listeners: list[StateListener] = []

        self._events: asyncio.Queue[object] = asyncio.Queue()
        self._consumer: asyncio.Task[None] | None = None
        self._auth_unsubscribe: Callable[[], None] | None = None

        self._hydration: asyncio.Task[None] | None = None
        self._hydration_identity: str | None = None

        self._profile_subscription: Subscription | None = None
        self._profile_subscription_identity: str | None = None

        self._loaded = asyncio.Event()

    # -- observation -------------------------------------------------------

    @property
    def state(self) -> SessionState:
        return self._state

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            with contextlib.suppress(ValueError):
                self._listeners.remove(listener)

        return unsubscribe

    async def wait_until_loaded(self, timeout: float | None = None) -> SessionState:
        await asyncio.wait_for(self._loaded.wait(), timeout)
        return self._state

    async def settle(self, timeout: float | None = None) -> SessionState:
        """
        Wait until queued auth events are applied and any running hydration has
        finished. Bounded by `timeout`; on expiry the current state is returned.
        """

        try:
            await asyncio.wait_for(self._drain(), timeout)
        except TimeoutError:
            log.warning("session_settle_timeout", timeout=timeout)
        return self._state

    async def _drain(self) -> None:
        await self._events.join()
        task = self._hydration
        if task is not None and not task.done():
            await asyncio.wait([task])

    # -- lifecycle ---------------------------------------------------------

    async def initialize(self) -> None:
        if self._consumer is None:
            self._consumer = asyncio.create_task(self._consume(), name="session-auth-events")
        if self._auth_unsubscribe is None:
            self._auth_unsubscribe = self._client.on_auth_state_change(self._on_backend_auth_change)

        try:
            session = await self._client.get_session()
        except BackendError as e:
            log.error("session_fetch_failed", error=str(e), code=e.code)
            self._set(loading=False)
            return
        self.on_auth_event(session.identity if session is not None else None)

    async def close(self) -> None:
        if self._auth_unsubscribe is not None:
            self._auth_unsubscribe()
            self._auth_unsubscribe = None
        self._cancel_hydration()
        self._release_profile_subscription()
        if self._consumer is not None:
            self._events.put_nowait(_STOP)
            with contextlib.suppress(asyncio.CancelledError):
                await self._consumer
            self._consumer = None
        self._listeners.clear()

    async def revalidate(self) -> SessionState:
        """
        Re-check the backend session behind the stored identity. An expired or
        revoked token signs the store out before the new state is returned.
        """

        if self._state.identity is None or self._consumer is None:
            return self._state
        try:
            session = await self._client.get_session()
        except BackendError as e:
            log.warning("session_revalidate_failed", error=str(e), code=e.code)
            return self._state
        if session is None:
            log.info("session_lapsed", identity_id=self._state.identity.id)
            self.on_auth_event(None)
            await self._events.join()
        return self._state

    def on_auth_event(self, identity: Identity | None) -> None:
        """Queue a session change; applied in arrival order by the consumer task."""

        self._events.put_nowait(identity)

    async def sign_out(self) -> None:
        try:
            await self._client.sign_out()
        except BackendError as e:
            log.warning("sign_out_failed", error=str(e), code=e.code)
        finally:
            # Local state follows the user's intent whatever the backend said.
            self._cancel_hydration()
            self._release_profile_subscription()
            self._set(identity=None, profile=None, loading=False)
            log.info("signed_out")

    # -- auth events -------------------------------------------------------

    def _on_backend_auth_change(self, event: AuthChangeEvent, session: AuthSession | None) -> None:
        log.debug("auth_state_change", auth_event=event.value, signed_in=session is not None)
        self.on_auth_event(session.identity if session is not None else None)

    async def _consume(self) -> None:
        while True:
            item = await self._events.get()
            try:
                if item is _STOP:
                    return
                self._apply_auth_event(item)  # type: ignore[arg-type]
            except Exception:
                log.exception("auth_event_failed")
            finally:
                self._events.task_done()

    def _apply_auth_event(self, identity: Identity | None) -> None:
        if identity is None:
            self._cancel_hydration()
            self._release_profile_subscription()
            self._set(identity=None, profile=None, loading=False)
            return

        previous = self._state.identity
        if previous is not None and previous.id == identity.id:
            # Token refresh / user update: keep the profile we already have.
            self._set(identity=identity, loading=self._state.profile is None)
        else:
            self._cancel_hydration()
            self._set(identity=identity, profile=None, loading=True)

        self.observe_profile_changes(identity)
        self._start_hydration(identity)

    # -- hydration ---------------------------------------------------------

    def _start_hydration(self, identity: Identity) -> None:
        running = self._hydration is not None and not self._hydration.done()
        if running and self._hydration_identity == identity.id:
            return
        self._cancel_hydration()
        self._hydration_identity = identity.id
        self._hydration = asyncio.create_task(
            self._hydrate(identity.id), name=f"profile-hydration:{identity.id}"
        )

    def _cancel_hydration(self) -> None:
        if self._hydration is not None and not self._hydration.done():
            self._hydration.cancel()
        self._hydration = None
        self._hydration_identity = None

    async def _hydrate(self, identity_id: str) -> None:
        try:
            result = await self._hydrator.fetch_profile(
                identity_id, is_current=lambda: self._is_current(identity_id)
            )
        except Exception:
            log.exception("profile_hydration_crashed", identity_id=identity_id)
            result = HydrationResult(identity_id, HydrationOutcome.failed, attempts=0)

        if result.outcome is HydrationOutcome.discarded or not self._is_current(identity_id):
            return
        if result.profile is not None:
            self._set(profile=result.profile, loading=False)
        else:
            self._set(loading=False)
        log.info("profile_hydrated", identity_id=identity_id, outcome=result.outcome.value)

    def _is_current(self, identity_id: str) -> bool:
        identity = self._state.identity
        return identity is not None and identity.id == identity_id

    # -- profile change feed -----------------------------------------------

    def observe_profile_changes(self, identity: Identity) -> None:
        if (
            self._profile_subscription is not None
            and self._profile_subscription_identity == identity.id
        ):
            return
        self._release_profile_subscription()

        identity_id = identity.id

        def on_change(change: ChangeEvent) -> None:
            if change.new is None or not self._is_current(identity_id):
                return
            try:
                profile = Profile.model_validate(dict(change.new))
            except ValidationError:
                log.exception("profile_change_invalid", identity_id=identity_id)
                return
            self._set(profile=profile)

        try:
            self._profile_subscription = (
                self._client.channel(f"profile:{identity_id}")
                .on("*", table="profiles", filter=f"id=eq.{identity_id}", callback=on_change)
                .subscribe()
            )
        except BackendError as e:
            log.error("profile_subscribe_failed", identity_id=identity_id, error=str(e))
            return
        self._profile_subscription_identity = identity_id

    def _release_profile_subscription(self) -> None:
        if self._profile_subscription is not None:
            self._profile_subscription.unsubscribe()
        self._profile_subscription = None
        self._profile_subscription_identity = None

    # -- state -------------------------------------------------------------

    def _set(self, **changes: object) -> None:
        new_state = dataclasses.replace(self._state, **changes)  # type: ignore[arg-type]
        if new_state == self._state:
            return
        self._state = new_state
        if new_state.loading:
            self._loaded.clear()
        else:
            self._loaded.set()
        for listener in list(self._listeners):
            try:
                listener(new_state)
            except Exception:
                log.exception("session_listener_failed")


# --- Module Notes -----------------------------------------------------------
# A change-feed update and an in-flight hydration may both write `profile`; the
# last one wins, which is fine because both read the same backend row.
