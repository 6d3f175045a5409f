# care_core/common/api/exceptions.py

from __future__ import annotations

import logging
import uuid
from typing import Any

from django.core.exceptions import ValidationError as DjangoValidationError
from django.db.models import ProtectedError
from django.http import Http404
from rest_framework import status
from rest_framework.exceptions import APIException, NotAuthenticated, PermissionDenied, ValidationError
from rest_framework.response import Response
from rest_framework.views import exception_handler as drf_exception_handler

from care_core.common.exceptions import ConflictError, DomainError, InfrastructureError

logger = logging.getLogger(__name__)

RETRY_AFTER_SECONDS = "2"


def ensure_request_id(request) -> str:
    """
    Stable request_id for the request; reuses X-Request-Id when the caller sent one.
    """
    rid = getattr(request, "request_id", None) if request is not None else None
    if not rid and request is not None:
        rid = request.META.get("HTTP_X_REQUEST_ID")
    if not rid:
        rid = uuid.uuid4().hex
    if request is not None:
        setattr(request, "request_id", rid)
    return rid


def build_error_envelope(*, request=None, code: str, message: str, details: Any = None) -> dict[str, Any]:
    """
    Canonical error envelope:
      {"error": {"code", "message", "details", "request_id"}}
    """
    return {
        "error": {
            "code": code,
            "message": message,
            "details": details,
            "request_id": ensure_request_id(request),
        }
    }


def _translate(exc: Exception) -> Exception:
    """
    Django-level errors that escape services (model constraints, PROTECT deletes)
    become DRF errors so they get a 4xx envelope instead of a 500.
    """
    if isinstance(exc, DjangoValidationError):
        detail = exc.message_dict if hasattr(exc, "error_dict") else {"detail": exc.messages}
        return ValidationError(detail)
    if isinstance(exc, ProtectedError):
        return ConflictError("Record is referenced by postings and cannot be deleted.")
    return exc


def _code_for(exc: Exception, http_status: int) -> str:
    if isinstance(exc, DomainError):
        return exc.default_code
    if isinstance(exc, ValidationError):
        return "validation_error"
    if isinstance(exc, NotAuthenticated):
        return "not_authenticated"
    if isinstance(exc, PermissionDenied):
        return "permission_denied"
    if isinstance(exc, Http404):
        return "not_found"
    if isinstance(exc, APIException):
        return getattr(exc, "default_code", "api_error") or "api_error"
    if http_status >= 500:
        return "server_error"
    return "error"


def _message_and_details(exc: Exception, data: Any) -> tuple[str, Any]:
    if isinstance(exc, DomainError):
        return exc.message, ({k: str(v) for k, v in exc.context.items()} or None)

    if isinstance(data, dict) and "detail" in data:
        rest = {k: v for k, v in data.items() if k != "detail"}
        return str(data.get("detail")), (rest or None)

    return "Request failed.", data


def api_exception_handler(exc: Exception, context: dict[str, Any]):
    request = context.get("request")
    exc = _translate(exc)
    response = drf_exception_handler(exc, context)

    if response is None:
        logger.exception("Unhandled error on %s", getattr(request, "path", "?"), exc_info=exc)
        return Response(
            build_error_envelope(
                request=request,
                code="server_error",
                message="Unexpected server error.",
                details=None,
            ),
            status=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    message, details = _message_and_details(exc, response.data)
    headers = {k: v for k, v in response.headers.items() if k.lower() != "content-type"}
    if isinstance(exc, InfrastructureError):
        headers.setdefault("Retry-After", RETRY_AFTER_SECONDS)

    return Response(
        build_error_envelope(
            request=request,
            code=_code_for(exc, response.status_code),
            message=message,
            details=details,
        ),
        status=response.status_code,
        headers=headers,
    )
