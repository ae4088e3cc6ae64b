"""
assoc_portal.services

Service-layer package.

Responsibilities:
- Implement the portal's workflows on top of the Remote Data Service contract.
- Check the acting principal before every write.
- Raise typed domain errors (`assoc_portal.errors`) for the API layer to map.
"""

# Package marker.


# --- Module Notes -----------------------------------------------------------
# Services are pure Python over `RemoteDataService`; tests drive them against an
# in-memory `LocalBackend` or a scripted fake.
