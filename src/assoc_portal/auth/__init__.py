"""
assoc_portal.auth

Authentication/authorization package.

Responsibilities:
- JWT helpers used by the local backend for access and recovery tokens.
- The closed `Role` variant and the profile-facing auth models.
"""

# Package marker.


# --- Module Notes -----------------------------------------------------------
# Route-level authorization lives in `assoc_portal.access`; this package only knows
# about credentials and roles.
