# care_core/common/scope.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional
from uuid import UUID

from rest_framework.exceptions import ValidationError

from care_core.common.context import ActorContext
from care_core.common.exceptions import ForbiddenError

MISSING_SCOPE_MSG = "Missing scope header: X-Organization-Id."
INVALID_SCOPE_MSG = "Invalid scope header: X-Organization-Id must be a UUID."

HDR_ORGANIZATION = "X-Organization-Id"


@dataclass(frozen=True)
class Scope:
    organization_id: UUID


def _parse_uuid(value: str) -> Optional[UUID]:
    try:
        return UUID(str(value))
    except (TypeError, ValueError):
        return None


def _get_header(request, name: str) -> Optional[str]:
    """
    request.headers is case-insensitive; fallback to META for the test client.
    """
    v = request.headers.get(name) if hasattr(request, "headers") else None
    if v:
        return v
    meta_key = "HTTP_" + name.upper().replace("-", "_")
    return request.META.get(meta_key)


def require_scope(request) -> Scope:
    raw = _get_header(request, HDR_ORGANIZATION)
    if not raw:
        raise ValidationError({"detail": MISSING_SCOPE_MSG})

    organization_id = _parse_uuid(raw)
    if organization_id is None:
        raise ValidationError({"detail": INVALID_SCOPE_MSG})

    scope = Scope(organization_id=organization_id)
    request.scope = scope
    return scope


def actor_context(request) -> ActorContext:
    """
    Resolve the explicit engine context for an API request:
    organization from the scope header, roles from the identity collaborator.
    """
    from care_core.iam.services import roles_for_user

    scope = require_scope(request)
    user_id = getattr(request.user, "id", None)
    roles = roles_for_user(organization_id=scope.organization_id, user_id=user_id)
    if not roles:
        raise ForbiddenError("Not a member of this organization.", organization_id=scope.organization_id)

    return ActorContext(organization_id=scope.organization_id, user_id=user_id, roles=frozenset(roles))
