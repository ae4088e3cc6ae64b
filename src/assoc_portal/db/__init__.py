"""
assoc_portal.db

Persistence package (SQLAlchemy async).

Responsibilities:
- ORM schema for the tables the local backend serves.
- Engine/session factories and dev/test bootstrap.
"""

# Package marker.
