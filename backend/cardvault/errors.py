# Overview: Domain exceptions shared by the service layer and their JSON rendering.

"""
Service-layer error taxonomy.

Every exception carries the HTTP status the routes answer with and the
message shown to the caller. NotFoundError deliberately covers both
"does not exist" and "exists but you may not see it", so responses never
reveal whether another user's resource exists.
"""

from __future__ import annotations

from flask import jsonify


class ServiceError(Exception):
    """Base class for expected, user-facing service failures."""

    status_code = 400
    default_message = "Bad request"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message

    def to_dict(self) -> dict:
        return {"error": self.message}


class ValidationError(ServiceError, ValueError):
    """400-level input problem."""


class NotFoundError(ServiceError):
    """Resource absent, soft-deleted, or not visible to the caller."""

    status_code = 404
    default_message = "Not found"


class ForbiddenError(ServiceError):
    """Caller can see the resource but lacks the capability for this operation."""

    status_code = 403
    default_message = "Not authorized"


class ConflictError(ServiceError):
    """409-level business rule conflict (duplicate share, duplicate card number)."""

    status_code = 409
    default_message = "Conflict"


class UserNotFoundError(ServiceError):
    """Share target email does not resolve to a user."""

    default_message = "User not found"


class NotDeletedError(ServiceError):
    """Restore attempted on a resource that is not soft-deleted."""

    default_message = "Resource is not deleted"


class UnsupportedResourceTypeError(ServiceError):
    default_message = "Unsupported resource type"


class UnsupportedOperationError(ServiceError):
    status_code = 405
    default_message = "Operation not supported for this resource type"


class InsufficientBalanceError(ServiceError):
    """
    A gift card transaction would drive the balance below zero.

    Carries the balance before the change, the attempted amount and the
    balance the change would have produced (all in cents).
    """

    status_code = 422

    def __init__(
        self,
        current_cents: int,
        attempted_cents: int,
        would_be_cents: int,
        message: str | None = None,
    ):
        self.current_cents = current_cents
        self.attempted_cents = attempted_cents
        self.would_be_cents = would_be_cents
        super().__init__(
            message
            or f"Insufficient balance: available {current_cents / 100:.2f}, "
            f"requested {attempted_cents / 100:.2f}"
        )

    def to_dict(self) -> dict:
        return {
            "error": self.message,
            "current_balance_cents": self.current_cents,
            "attempted_cents": self.attempted_cents,
            "would_be_cents": self.would_be_cents,
        }


def error_response(exc: ServiceError):
    """Render a ServiceError as a (json, status) tuple for Flask views."""
    return jsonify(exc.to_dict()), exc.status_code
