# care_core/common/permissions.py

from __future__ import annotations

from typing import Iterable

from care_core.common.context import ActorContext
from care_core.common.exceptions import ForbiddenError

# Role codes (organization membership role_code values)
ROLE_ADMIN = "ADMIN"
ROLE_KETUA = "KETUA"            # chairperson
ROLE_BENDAHARA = "BENDAHARA"    # treasurer
ROLE_STAFF = "STAFF"


def require_any_role(ctx: ActorContext, roles: Iterable[str], *, action: str) -> None:
    """
    Role membership check (equality, no hierarchy).
    """
    roles = set(roles)
    if not ctx.has_any_role(roles):
        raise ForbiddenError(
            f"Role required to {action}: {', '.join(sorted(roles))}.",
            user_id=ctx.user_id,
        )
