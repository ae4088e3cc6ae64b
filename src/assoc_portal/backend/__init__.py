"""
assoc_portal.backend

Remote Data Service boundary.

Responsibilities:
- Define the contract the portal consumes (auth, table queries, change feeds).
- Provide a self-hosted implementation over async SQLAlchemy for dev/test.
"""

# Package marker; import from submodules directly.


# --- Module Notes -----------------------------------------------------------
# Nothing outside this package should import SQLAlchemy to read portal tables;
# everything goes through `RemoteDataService.table(...)`.
