"""
assoc_portal.errors

Domain errors raised by portal services.

Responsibilities:
- Separate business-rule and validation failures (shown inline, never retried)
  from permission and lookup failures.
- Carry a user-facing message; the API layer maps each class to an HTTP status.
"""

from __future__ import annotations


class PortalError(Exception):
    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(PortalError):
    pass


class BusinessRuleError(PortalError):
    pass


class CapacityExceededError(BusinessRuleError):
    pass


class DuplicateParticipationError(BusinessRuleError):
    pass


class InvalidTransitionError(BusinessRuleError):
    pass


class RecipientNotFoundError(BusinessRuleError):
    pass


class AuthenticationFailedError(PortalError):
    pass


class PermissionDeniedError(PortalError):
    pass


class NotFoundError(PortalError):
    pass


class ConnectionFailedError(PortalError):
    def __init__(self, message: str = "connection failed") -> None:
        super().__init__(message)
