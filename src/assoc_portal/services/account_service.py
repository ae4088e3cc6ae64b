"""
assoc_portal.services.account_service

Account flows: registration, sign-in, password recovery, email change.

Responsibilities:
- Register a new identity with the metadata the sign-up trigger turns into a profile.
- Sign in and pick the landing area from the profile role.
- Run the password-recovery flow (request link, redeem link, set new password).
- Change the sign-in email of the current identity.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass

from assoc_portal.access.guard import landing_path
from assoc_portal.backend.contract import Identity, RemoteDataService
from assoc_portal.backend.errors import AuthApiError, BackendError
from assoc_portal.errors import AuthenticationFailedError, ConnectionFailedError, ValidationError
from assoc_portal.observability.logging import get_logger
from assoc_portal.schemas import Profile
from assoc_portal.services.common import connection_guard, run
from assoc_portal.settings import Settings

log = get_logger(__name__)

MIN_PASSWORD_LENGTH = 6


class RegistrationOutcome(enum.StrEnum):
    created = "created"
    confirmation_required = "confirmation_required"
    already_registered = "already_registered"


@dataclass(frozen=True, slots=True)
class RegistrationResult:
    outcome: RegistrationOutcome
    identity_id: str | None = None


@dataclass(frozen=True, slots=True)
class SignInResult:
    identity: Identity
    landing: str


def _check_password(password: str) -> None:
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"password must be at least {MIN_PASSWORD_LENGTH} characters")


class AccountService:
    def __init__(self, *, client: RemoteDataService, settings: Settings) -> None:
        self._client = client
        self._settings = settings

    async def register(
        self,
        *,
        email: str,
        password: str,
        full_name: str,
        phone: str | None = None,
        institution: str | None = None,
    ) -> RegistrationResult:
        email = email.strip()
        if "@" not in email:
            raise ValidationError("a valid email address is required")
        _check_password(password)
        if not full_name.strip():
            raise ValidationError("full name is required")

        metadata = {"full_name": full_name.strip(), "phone": phone, "institution": institution}
        try:
            with connection_guard("sign_up"):
                response = await self._client.sign_up(email, password, metadata)
        except AuthApiError as e:
            if e.code == "user_already_exists":
                log.info("register_existing_email")
                return RegistrationResult(RegistrationOutcome.already_registered)
            raise ValidationError(e.message) from e

        identity_id = response.identity.id if response.identity is not None else None
        if response.session is None:
            log.info("registered_pending_confirmation", identity_id=identity_id)
            return RegistrationResult(RegistrationOutcome.confirmation_required, identity_id)
        log.info("registered", identity_id=identity_id)
        return RegistrationResult(RegistrationOutcome.created, identity_id)

    async def sign_in(self, *, email: str, password: str) -> SignInResult:
        try:
            with connection_guard("sign_in"):
                response = await self._client.sign_in_with_password(email.strip(), password)
        except AuthApiError as e:
            log.info("sign_in_rejected", code=e.code)
            raise AuthenticationFailedError(e.message) from e
        if response.identity is None:
            raise AuthenticationFailedError("sign-in returned no identity")

        # Read the role directly: session hydration may still be running.
        profile: Profile | None = None
        try:
            row = await run(
                self._client.table("profiles")
                .select("*")
                .eq("id", response.identity.id)
                .maybe_single()
            )
            profile = Profile.model_validate(row) if row is not None else None
        except (BackendError, ConnectionFailedError) as e:
            log.warning("sign_in_role_lookup_failed", identity_id=response.identity.id, error=str(e))

        landing = landing_path(profile)
        log.info("signed_in", identity_id=response.identity.id, landing=landing)
        return SignInResult(identity=response.identity, landing=landing)

    async def request_password_reset(self, *, email: str) -> None:
        email = email.strip()
        if not email:
            raise ValidationError("email is required")
        redirect_to = f"{self._settings.public_base_url.rstrip('/')}/reset-password"
        try:
            with connection_guard("reset_password_for_email"):
                await self._client.reset_password_for_email(email, redirect_to)
        except AuthApiError as e:
            raise ValidationError(e.message) from e

    async def verify_recovery(self, *, token: str) -> Identity:
        try:
            with connection_guard("verify_recovery"):
                response = await self._client.verify_recovery(token)
        except AuthApiError as e:
            log.info("recovery_link_rejected", code=e.code)
            raise AuthenticationFailedError(
                "invalid or expired link, please request a new password reset"
            ) from e
        if response.identity is None:
            raise AuthenticationFailedError("invalid or expired link")
        return response.identity

    async def reset_password(self, *, password: str, confirmation: str) -> None:
        if password != confirmation:
            raise ValidationError("the passwords do not match")
        _check_password(password)

        with connection_guard("get_session"):
            session = await self._client.get_session()
        if session is None:
            raise AuthenticationFailedError(
                "invalid or expired link, please request a new password reset"
            )
        try:
            with connection_guard("update_user"):
                await self._client.update_user(password=password)
        except AuthApiError as e:
            raise ValidationError(e.message) from e
        log.info("password_reset", identity_id=session.identity.id)

    async def change_email(self, *, new_email: str) -> Identity:
        new_email = new_email.strip()
        if "@" not in new_email:
            raise ValidationError("a valid email address is required")
        try:
            with connection_guard("update_user"):
                identity = await self._client.update_user(email=new_email)
        except AuthApiError as e:
            raise ValidationError(e.message) from e
        log.info("email_changed", identity_id=identity.id)
        return identity
