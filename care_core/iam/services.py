# care_core/iam/services.py
from __future__ import annotations

from uuid import UUID

from care_core.iam.models import Membership


def roles_for_user(*, organization_id: UUID, user_id: int | None) -> set[str]:
    """
    Role codes held by the user in the given organization (active memberships only).
    """
    if user_id is None:
        return set()

    return set(
        Membership.objects.filter(
            organization_id=organization_id,
            user_id=user_id,
            is_active=True,
        ).values_list("role_code", flat=True)
    )



def grant_role(*, organization_id: UUID, user_id: int, role_code: str) -> Membership:
    membership, _ = Membership.objects.update_or_create(
        organization_id=organization_id,
        user_id=user_id,
        role_code=role_code,
        defaults={"is_active": True},
    )
    return membership
