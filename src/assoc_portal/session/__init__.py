"""
assoc_portal.session

Session lifecycle package.

Responsibilities:
- Hold the authoritative "who is signed in and what is their profile" state.
- Hydrate the profile of a new identity, tolerating backend replication lag.
"""

# Package marker.
