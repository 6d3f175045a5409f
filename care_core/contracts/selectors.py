# care_core/contracts/selectors.py
from __future__ import annotations

from uuid import UUID

from django.db.models import QuerySet

from care_core.contracts.models import Contract


def contracts_filtered(
    *,
    organization_id: UUID,
    status: str | None = None,
    patient_id: UUID | None = None,
    room_id: UUID | None = None,
) -> QuerySet[Contract]:
    qs = Contract.objects.filter(organization_id=organization_id)

    if status:
        qs = qs.filter(status=status)
    if patient_id:
        qs = qs.filter(patient_id=patient_id)
    if room_id:
        qs = qs.filter(room_id=room_id)

    return qs.order_by("-start_date", "-created_at")
