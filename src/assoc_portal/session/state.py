"""
assoc_portal.session.state

Immutable snapshot of the session.

Responsibilities:
- Define `SessionState` (identity, profile, loading).
- Derive the acting `Principal` from a snapshot.
"""

from __future__ import annotations

from dataclasses import dataclass

from assoc_portal.auth.models import Principal, Role
from assoc_portal.backend.contract import Identity
from assoc_portal.schemas import Profile


@dataclass(frozen=True, slots=True)
class SessionState:
    identity: Identity | None = None
    profile: Profile | None = None
    # True until identity and profile have both been resolved once.
    loading: bool = True

    @property
    def is_admin(self) -> bool:
        return self.profile is not None and self.profile.is_admin

    def principal(self) -> Principal | None:
        if self.identity is None:
            return None
        # Without a profile the caller is held at the member floor.
        role = self.profile.role if self.profile is not None else Role.member
        return Principal(subject=self.identity.id, email=self.identity.email, role=role)
