# care_core/audit/services.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional
from uuid import UUID

from django.db import transaction

from care_core.audit.models import AuditEvent
from care_core.common.context import ActorContext


@dataclass(frozen=True)
class AuditRecord:
    event_code: str
    entity_type: str
    entity_id: UUID
    organization_id: UUID
    actor_user_id: int | None
    metadata: Dict[str, Any]


class AuditService:
    """
    Central audit writer. Rows are written inside the caller's transaction,
    so a rolled-back action leaves no audit trail behind.
    """

    @staticmethod
    @transaction.atomic
    def log(
        *,
        ctx: ActorContext,
        event_code: str,
        entity_type: str,
        entity_id: UUID,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> AuditRecord:
        metadata = metadata or {}

        AuditEvent.objects.create(
            organization_id=ctx.organization_id,
            event_code=event_code,
            entity_type=entity_type,
            entity_id=entity_id,
            actor_user_id=ctx.user_id,
            metadata=metadata,
        )

        return AuditRecord(
            event_code=event_code,
            entity_type=entity_type,
            entity_id=entity_id,
            organization_id=ctx.organization_id,
            actor_user_id=ctx.user_id,
            metadata=metadata,
        )
