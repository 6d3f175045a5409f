# care_core/common/context.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import FrozenSet
from uuid import UUID


@dataclass(frozen=True)
class ActorContext:
    """
    Who is acting, and for which organization.

    Passed into every engine call instead of reading an ambient "active organization".
    `user_id` is None only for system-initiated transitions (timeout sweeps).
    """
    organization_id: UUID
    user_id: int | None
    roles: FrozenSet[str] = field(default_factory=frozenset)

    def has_role(self, role: str) -> bool:
        return role in self.roles

    def has_any_role(self, roles) -> bool:
        return bool(self.roles.intersection(roles))

    @classmethod
    def system(cls, organization_id: UUID) -> "ActorContext":
        return cls(organization_id=organization_id, user_id=None, roles=frozenset())
