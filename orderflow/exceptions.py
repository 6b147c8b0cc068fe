"""Domain exception hierarchy for structured error responses."""

from __future__ import annotations


class AppException(Exception):
    """Base exception for all domain errors.

    Subclasses set ``code`` and ``status_code`` at the class level; callers
    provide ``message`` and an optional ``details`` list.
    """

    code: str = "APP_ERROR"
    status_code: int = 500

    def __init__(self, message: str, details: list[dict] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or []


class NotFoundException(AppException):
    code = "NOT_FOUND"
    status_code = 404


class ConflictException(AppException):
    code = "CONFLICT"
    status_code = 409


class UnauthorizedException(AppException):
    code = "UNAUTHORIZED"
    status_code = 401


class ValidationException(AppException):
    code = "VALIDATION_ERROR"
    status_code = 422


class StateConflictException(ConflictException):
    """A transition or mutation is not allowed in the entity's current state.

    ``blockers`` lists every reason the change was refused so callers can
    surface all of them at once.
    """

    code = "STATE_CONFLICT"

    def __init__(
        self,
        message: str,
        blockers: list[str] | None = None,
        details: list[dict] | None = None,
    ) -> None:
        self.blockers = list(blockers or [])
        super().__init__(message, details or [{"blocker": b} for b in self.blockers])


class DependencyFailureException(AppException):
    """A collaborator (pricing, tax, numbering, stock, validator) failed."""

    code = "DEPENDENCY_FAILURE"
    status_code = 502


class InsufficientStockException(DependencyFailureException):
    code = "INSUFFICIENT_STOCK"
    status_code = 409


class PartialBatchFailureException(AppException):
    code = "PARTIAL_BATCH_FAILURE"
    status_code = 207
