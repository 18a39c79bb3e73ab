from __future__ import annotations

from typing import Any


class CoreError(Exception):
    """Base class for errors the transport adapter maps onto HTTP responses."""

    code = "error"
    status_code = 500

    def __init__(self, message: str, *, details: Any = None) -> None:
        self.message = message
        self.details = details
        super().__init__(message)


class UnauthenticatedError(CoreError):
    code = "unauthenticated"
    status_code = 401


class ForbiddenError(CoreError):
    """Identity resolved, but the action or the scope is not permitted."""

    code = "forbidden"
    status_code = 403


class NotFoundError(CoreError):
    """Record absent or outside the caller's tenant scope; callers cannot tell which."""

    code = "not_found"
    status_code = 404

    def __init__(self, resource: str) -> None:
        self.resource = resource
        super().__init__(f"{resource} not found")


class ValidationError(CoreError):
    code = "validation_error"
    status_code = 422

    def __init__(self, field: str, message: str) -> None:
        self.field = field
        super().__init__(message, details={"field": field})


class ConflictError(CoreError):
    code = "conflict"
    status_code = 409


class AggregationError(CoreError):
    """Storage returned a malformed or partial group result."""

    code = "aggregation_error"
    status_code = 500
