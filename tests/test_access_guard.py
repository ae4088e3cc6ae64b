"""
tests.test_access_guard

Route guard decisions and redirects.
"""

from __future__ import annotations

import pytest

from assoc_portal.access.guard import (
    ADMIN_HOME,
    LOGIN_PATH,
    MEMBER_HOME,
    AccessDecision,
    decide,
    landing_path,
    redirect_for,
)
from assoc_portal.auth.models import Role
from assoc_portal.backend.contract import Identity
from assoc_portal.schemas import Profile
from assoc_portal.session.state import SessionState

ALICE = Identity(id="u-alice", email="alice@example.org")


def _profile(role: Role) -> Profile:
    return Profile(id=ALICE.id, email=ALICE.email, role=role)


@pytest.mark.parametrize("required", list(Role))
def test_no_identity_is_unauthenticated(required: Role) -> None:
    state = SessionState(identity=None, profile=None, loading=False)
    assert decide(state, required) is AccessDecision.unauthenticated


@pytest.mark.parametrize("required", list(Role))
@pytest.mark.parametrize("identity", [None, ALICE])
def test_loading_wins_over_everything(required: Role, identity: Identity | None) -> None:
    state = SessionState(identity=identity, profile=None, loading=True)
    assert decide(state, required) is AccessDecision.loading


def test_admin_reaches_both_floors() -> None:
    state = SessionState(identity=ALICE, profile=_profile(Role.admin), loading=False)
    assert decide(state, Role.member) is AccessDecision.authorized
    assert decide(state, Role.admin) is AccessDecision.authorized


def test_member_is_denied_admin_area() -> None:
    state = SessionState(identity=ALICE, profile=_profile(Role.member), loading=False)
    assert decide(state, Role.member) is AccessDecision.authorized
    assert decide(state, Role.admin) is AccessDecision.no_role_match


def test_missing_profile_holds_member_floor_only() -> None:
    # Hydration terminated without a profile.
    state = SessionState(identity=ALICE, profile=None, loading=False)
    assert decide(state, Role.member) is AccessDecision.authorized
    assert decide(state, Role.admin) is AccessDecision.no_role_match


def test_missing_profile_redirect_does_not_loop() -> None:
    state = SessionState(identity=ALICE, profile=None, loading=False)
    redirect = redirect_for(decide(state, Role.admin))
    assert redirect is not None
    assert redirect.location == MEMBER_HOME
    # The redirect target is the member area, which this state is authorized for.
    assert decide(state, Role.member) is AccessDecision.authorized


def test_default_required_role_is_member() -> None:
    state = SessionState(identity=ALICE, profile=None, loading=False)
    assert decide(state) is AccessDecision.authorized


def test_redirect_targets() -> None:
    login = redirect_for(AccessDecision.unauthenticated)
    assert login is not None and login.location == LOGIN_PATH
    member = redirect_for(AccessDecision.no_role_match)
    assert member is not None and member.location == MEMBER_HOME
    assert redirect_for(AccessDecision.loading) is None
    assert redirect_for(AccessDecision.authorized) is None


def test_landing_path() -> None:
    assert landing_path(_profile(Role.admin)) == ADMIN_HOME
    assert landing_path(_profile(Role.member)) == MEMBER_HOME
    assert landing_path(None) == MEMBER_HOME


def test_role_satisfies() -> None:
    assert Role.admin.satisfies(Role.member)
    assert Role.member.satisfies(Role.member)
    assert not Role.member.satisfies(Role.admin)
