"""
assoc_portal.access

Authorization decisions for guarded areas.
"""

from assoc_portal.access.guard import (
    ADMIN_HOME,
    LOGIN_PATH,
    MEMBER_HOME,
    AccessDecision,
    Redirect,
    decide,
    landing_path,
    redirect_for,
)

__all__ = [
    "ADMIN_HOME",
    "LOGIN_PATH",
    "MEMBER_HOME",
    "AccessDecision",
    "Redirect",
    "decide",
    "landing_path",
    "redirect_for",
]
