# care_core/audit/selectors.py
from __future__ import annotations

from datetime import date
from typing import List
from uuid import UUID

from django.db.models import QuerySet

from care_core.audit.models import AuditEvent
from care_core.billing.models import BillingPeriod, Payment
from care_core.common.exceptions import ValidationError

AUDITED_ENTITY_TYPES = frozenset(
    {
        "Approval",
        "ApprovalWorkflow",
        "BillingPeriod",
        "Contract",
        "OperationalExpense",
        "Payment",
        "TransactionRequest",
    }
)


def contract_entity_ids(*, organization_id: UUID, contract_id: UUID) -> List[UUID]:
    """The contract plus every billing period and payment booked against it."""
    period_ids = BillingPeriod.objects.filter(organization_id=organization_id, contract_id=contract_id).values_list(
        "id", flat=True
    )
    payment_ids = Payment.objects.filter(organization_id=organization_id, contract_id=contract_id).values_list(
        "id", flat=True
    )
    return [contract_id, *period_ids, *payment_ids]


def list_audit_events(
    *,
    organization_id: UUID,
    entity_type: str | None = None,
    entity_id: UUID | None = None,
    event_code: str | None = None,
    actor_user_id: int | None = None,
    contract_id: UUID | None = None,
    occurred_from: date | None = None,
    occurred_to: date | None = None,
) -> QuerySet[AuditEvent]:
    if entity_type and entity_type not in AUDITED_ENTITY_TYPES:
        raise ValidationError(f"Unknown entity type: {entity_type}.", entity_type=entity_type)
    if occurred_from and occurred_to and occurred_from > occurred_to:
        raise ValidationError("'from' must not be after 'to'.")

    qs = AuditEvent.objects.filter(organization_id=organization_id)

    if contract_id:
        qs = qs.filter(entity_id__in=contract_entity_ids(organization_id=organization_id, contract_id=contract_id))
    if entity_type:
        qs = qs.filter(entity_type=entity_type)
    if entity_id:
        qs = qs.filter(entity_id=entity_id)
    if event_code:
        qs = qs.filter(event_code=event_code)
    if actor_user_id is not None:
        qs = qs.filter(actor_user_id=actor_user_id)
    if occurred_from:
        qs = qs.filter(occurred_at__date__gte=occurred_from)
    if occurred_to:
        qs = qs.filter(occurred_at__date__lte=occurred_to)

    return qs.order_by("-occurred_at")
