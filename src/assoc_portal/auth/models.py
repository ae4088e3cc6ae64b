"""
assoc_portal.auth.models

Auth domain models.

Responsibilities:
- Define the closed role variant (`Role`) with admin-over-member semantics.
- Define the acting identity (`Principal`) handed to services.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass


class Role(enum.StrEnum):
    member = "member"
    admin = "admin"

    def satisfies(self, required: Role) -> bool:
        """
        `member` is the floor every authenticated profile reaches; `admin` is an
        elevated floor only admins reach.
        """

        if required is Role.member:
            return True
        return self is Role.admin


@dataclass(frozen=True, slots=True)
class Principal:
    """
    Authenticated caller identity.
    """

    subject: str
    email: str
    role: Role = Role.member

    @property
    def is_admin(self) -> bool:
        return self.role is Role.admin


# --- Module Notes -----------------------------------------------------------
# Keep `Role` closed: stored profile rows are validated against it.
