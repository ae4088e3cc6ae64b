"""
assoc_portal.session.hydration

Bounded-retry profile lookup for a freshly established identity.

Responsibilities:
- Look up the `profiles` row by identity id.
- Treat "no row" as the expected replication race: retry after a fixed delay
  until the attempt budget is spent.
- Stop immediately on any other failure.
- Stop early when the identity is no longer the session's identity.
"""

from __future__ import annotations

import asyncio
import enum
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from pydantic import ValidationError

from assoc_portal.backend.contract import RemoteDataService
from assoc_portal.backend.errors import BackendError, NotFoundError
from assoc_portal.observability.logging import get_logger
from assoc_portal.schemas import Profile
from assoc_portal.settings import Settings

log = get_logger(__name__)

Sleep = Callable[[float], Awaitable[None]]


class HydrationOutcome(enum.StrEnum):
    found = "found"
    absent = "absent"
    failed = "failed"
    # The identity changed while a retry was pending; the result must not be applied.
    discarded = "discarded"


@dataclass(frozen=True, slots=True)
class HydrationResult:
    identity_id: str
    outcome: HydrationOutcome
    attempts: int
    profile: Profile | None = None


class ProfileHydrator:
    def __init__(
        self,
        *,
        client: RemoteDataService,
        attempts: int = 3,
        retry_delay: float = 1.0,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        if attempts < 1:
            raise ValueError("attempts must be >= 1")
        self._client = client
        self._attempts = attempts
        self._retry_delay = retry_delay
        self._sleep = sleep

    @classmethod
    def from_settings(cls, *, client: RemoteDataService, settings: Settings) -> ProfileHydrator:
        return cls(
            client=client,
            attempts=settings.profile_fetch_attempts,
            retry_delay=settings.profile_retry_delay_seconds,
        )

    async def fetch_profile(
        self,
        identity_id: str,
        attempts_remaining: int | None = None,
        *,
        is_current: Callable[[], bool] = lambda: True,
    ) -> HydrationResult:
        """
        `attempts_remaining` counts the lookup about to be made, so the default
        budget of 3 means at most 3 lookups spaced `retry_delay` apart.
        """

        remaining = self._attempts if attempts_remaining is None else attempts_remaining
        attempt = 0
        while True:
            attempt += 1
            remaining -= 1
            try:
                row = await (
                    self._client.table("profiles").select("*").eq("id", identity_id).single().execute()
                )
                profile = Profile.model_validate(row)
            except NotFoundError:
                if remaining <= 0:
                    log.warning("profile_not_found", identity_id=identity_id, attempts=attempt)
                    return HydrationResult(identity_id, HydrationOutcome.absent, attempt)
                log.info(
                    "profile_fetch_retry",
                    identity_id=identity_id,
                    attempts_left=remaining,
                    delay=self._retry_delay,
                )
                await self._sleep(self._retry_delay)
                if not is_current():
                    log.info("profile_fetch_discarded", identity_id=identity_id, attempts=attempt)
                    return HydrationResult(identity_id, HydrationOutcome.discarded, attempt)
                continue
            except (BackendError, ValidationError) as e:
                log.error(
                    "profile_fetch_failed",
                    identity_id=identity_id,
                    attempts=attempt,
                    error=str(e),
                    code=getattr(e, "code", None),
                )
                return HydrationResult(identity_id, HydrationOutcome.failed, attempt)

            return HydrationResult(identity_id, HydrationOutcome.found, attempt, profile=profile)


# --- Module Notes -----------------------------------------------------------
# The hydrator never touches session state itself; `SessionStore` applies the
# result, and only if the identity still matches.
