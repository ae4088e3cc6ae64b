"""
assoc_portal.api.errors

Translation of guard decisions and domain errors into HTTP responses.

Responsibilities:
- Turn a non-authorized guard decision into a redirect (or a retryable 503
  while the session is still loading).
- Map `assoc_portal.errors` classes to status codes with the inline message.
"""

from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, RedirectResponse, Response
from starlette.status import (
    HTTP_303_SEE_OTHER,
    HTTP_400_BAD_REQUEST,
    HTTP_401_UNAUTHORIZED,
    HTTP_403_FORBIDDEN,
    HTTP_404_NOT_FOUND,
    HTTP_409_CONFLICT,
    HTTP_502_BAD_GATEWAY,
    HTTP_503_SERVICE_UNAVAILABLE,
)

from assoc_portal.access.guard import AccessDecision, redirect_for
from assoc_portal.backend.errors import BackendError
from assoc_portal.errors import (
    AuthenticationFailedError,
    BusinessRuleError,
    ConnectionFailedError,
    NotFoundError,
    PermissionDeniedError,
    PortalError,
    ValidationError,
)
from assoc_portal.observability.logging import get_logger

log = get_logger(__name__)

_STATUS: tuple[tuple[type[PortalError], int], ...] = (
    (ValidationError, HTTP_400_BAD_REQUEST),
    (BusinessRuleError, HTTP_409_CONFLICT),
    (AuthenticationFailedError, HTTP_401_UNAUTHORIZED),
    (PermissionDeniedError, HTTP_403_FORBIDDEN),
    (NotFoundError, HTTP_404_NOT_FOUND),
    (ConnectionFailedError, HTTP_503_SERVICE_UNAVAILABLE),
)


class AccessRejected(Exception):
    """Raised by route guards for any decision other than AUTHORIZED."""

    def __init__(self, decision: AccessDecision) -> None:
        super().__init__(decision.value)
        self.decision = decision


def status_for(error: PortalError) -> int:
    for cls, status in _STATUS:
        if isinstance(error, cls):
            return status
    return HTTP_400_BAD_REQUEST


async def _access_rejected(request: Request, exc: AccessRejected) -> Response:
    redirect = redirect_for(exc.decision)
    if redirect is None:
        # Still resolving the session: neutral waiting state, no redirect.
        return JSONResponse(
            {"status": "loading"},
            status_code=HTTP_503_SERVICE_UNAVAILABLE,
            headers={"Retry-After": "1"},
        )
    log.info("access_redirect", decision=exc.decision.value, location=redirect.location)
    return RedirectResponse(redirect.location, status_code=HTTP_303_SEE_OTHER)


async def _portal_error(request: Request, exc: PortalError) -> Response:
    status = status_for(exc)
    body: dict[str, str] = {"detail": exc.message, "error": type(exc).__name__}
    return JSONResponse(body, status_code=status)


async def _backend_error(request: Request, exc: BackendError) -> Response:
    log.error("backend_error", code=exc.code, error=exc.message)
    return JSONResponse({"detail": exc.message, "code": exc.code}, status_code=HTTP_502_BAD_GATEWAY)


def install_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AccessRejected, _access_rejected)  # type: ignore[arg-type]
    app.add_exception_handler(PortalError, _portal_error)  # type: ignore[arg-type]
    app.add_exception_handler(BackendError, _backend_error)  # type: ignore[arg-type]


# --- Module Notes -----------------------------------------------------------
# 303 makes the browser follow with GET whatever the original method was; the
# portal never re-submits a form to the redirect target.
# A followed redirect leaves no history entry for the guarded URL, so "back" from
# the sign-in page cannot return to it.
