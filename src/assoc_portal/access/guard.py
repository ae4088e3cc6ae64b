"""
assoc_portal.access.guard

Route guard state machine.

Responsibilities:
- Map a `SessionState` snapshot and a required `Role` to an `AccessDecision`.
- Name the redirect target for each non-authorized decision.
- Pick the landing area for a freshly signed-in profile.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass

from assoc_portal.auth.models import Role
from assoc_portal.schemas import Profile
from assoc_portal.session.state import SessionState

LOGIN_PATH = "/login"
MEMBER_HOME = "/member"
ADMIN_HOME = "/admin"


class AccessDecision(enum.StrEnum):
    loading = "LOADING"
    unauthenticated = "UNAUTHENTICATED"
    no_role_match = "AUTHENTICATED_NO_ROLE_MATCH"
    authorized = "AUTHORIZED"


def decide(state: SessionState, required_role: Role = Role.member) -> AccessDecision:
    """
    Rules, first match wins:

    1. still loading                      -> LOADING
    2. no identity                        -> UNAUTHENTICATED
    3. admin required, profile not admin  -> AUTHENTICATED_NO_ROLE_MATCH
    4. otherwise                          -> AUTHORIZED

    A missing profile never grants admin. It only reaches rule 3 once hydration
    has terminated (`loading` is False), and the member area it redirects to is
    itself satisfied without a profile, so the redirect cannot loop.
    """

    if state.loading:
        return AccessDecision.loading
    if state.identity is None:
        return AccessDecision.unauthenticated
    # Without a profile the caller holds the member floor only.
    role = state.profile.role if state.profile is not None else Role.member
    if not role.satisfies(required_role):
        return AccessDecision.no_role_match
    return AccessDecision.authorized


@dataclass(frozen=True, slots=True)
class Redirect:
    location: str


def redirect_for(decision: AccessDecision) -> Redirect | None:
    if decision is AccessDecision.unauthenticated:
        return Redirect(LOGIN_PATH)
    if decision is AccessDecision.no_role_match:
        return Redirect(MEMBER_HOME)
    return None


def landing_path(profile: Profile | None) -> str:
    return ADMIN_HOME if profile is not None and profile.is_admin else MEMBER_HOME
