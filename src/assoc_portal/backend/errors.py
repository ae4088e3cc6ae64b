"""
assoc_portal.backend.errors

Typed failures reported by a Remote Data Service.

Responsibilities:
- Give callers a stable, distinguishable error code per failure class.
- Separate "no row" (expected, drives retries) from real failures.
"""

from __future__ import annotations

# PostgREST-compatible codes, so a hosted backend and the local one agree.
NO_ROWS = "PGRST116"
MULTIPLE_ROWS = "PGRST116_MULTIPLE"
UNIQUE_VIOLATION = "23505"
UNDEFINED_COLUMN = "42703"
UNDEFINED_TABLE = "42P01"


class BackendError(Exception):
    code: str = "backend_error"

    def __init__(self, message: str, *, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code

    def __repr__(self) -> str:
        return f"{type(self).__name__}(code={self.code!r}, message={self.message!r})"


class NotFoundError(BackendError):
    """A single-row lookup matched no row."""

    code = NO_ROWS


class ConflictError(BackendError):
    """A write violated a uniqueness constraint."""

    code = UNIQUE_VIOLATION


class ConnectivityError(BackendError):
    """The service could not be reached or dropped the connection."""

    code = "connection_failed"


class AuthApiError(BackendError):
    """Credential or session failures (bad password, existing user, no session)."""

    code = "auth_error"
