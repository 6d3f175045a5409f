# care_core/common/exceptions.py
"""
Domain error taxonomy.

All errors are DRF APIExceptions so they surface through the shared error
envelope (common.api.exceptions.api_exception_handler) with a stable code.
Keyword context (entity_id, state, outstanding, ...) is kept on `.context`
and rendered as envelope details.
"""
from __future__ import annotations

from typing import Any

from rest_framework import status
from rest_framework.exceptions import APIException


class DomainError(APIException):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Request failed."
    default_code = "domain_error"

    def __init__(self, message: str | None = None, **context: Any):
        self.message = message or str(self.default_detail)
        self.context = {k: v for k, v in context.items() if v is not None}
        detail: Any = self.message
        if self.context:
            detail = {"detail": self.message, **{k: str(v) for k, v in self.context.items()}}
        super().__init__(detail=detail, code=self.default_code)

    def __str__(self) -> str:
        return self.message


class ValidationError(DomainError):
    """Malformed or out-of-range input (e.g. non-positive amount)."""
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Invalid input."
    default_code = "validation_error"


class ConflictError(DomainError):
    """Duplicate open period / approval for the same key."""
    status_code = status.HTTP_409_CONFLICT
    default_detail = "Conflict."
    default_code = "conflict"


class InvalidStateError(DomainError):
    """Action not permitted in the entity's current lifecycle state."""
    status_code = status.HTTP_409_CONFLICT
    default_detail = "Action not allowed in the current state."
    default_code = "invalid_state"


class ForbiddenError(DomainError):
    """Actor's roles do not satisfy the required role."""
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = "You do not have permission to perform this action."
    default_code = "forbidden"


class PaymentIncompleteError(DomainError):
    """Completing a contract while the patient still owes money."""
    status_code = status.HTTP_409_CONFLICT
    default_detail = "Outstanding balance must be paid first."
    default_code = "payment_incomplete"

    @property
    def outstanding(self) -> int:
        return int(self.context.get("outstanding", 0))


class InfrastructureError(DomainError):
    """Transient persistence failure that survived the bounded retry."""
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_detail = "Temporary storage failure. Please retry."
    default_code = "infrastructure_error"


class NotFoundError(DomainError):
    """Referenced entity does not exist in the actor's organization."""
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "Not found."
    default_code = "not_found"
