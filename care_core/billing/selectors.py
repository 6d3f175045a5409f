# care_core/billing/selectors.py
from __future__ import annotations

from typing import Any, Dict
from uuid import UUID

from django.db.models import QuerySet, Sum

from care_core.billing.models import (
    OPEN_PERIOD_STATUSES,
    BillingPeriod,
    Charge,
    PatientExpense,
    Payment,
    PeriodStatus,
)


def periods_filtered(
    *,
    organization_id: UUID,
    contract_id: UUID | None = None,
    status: str | None = None,
) -> QuerySet[BillingPeriod]:
    qs = BillingPeriod.objects.filter(organization_id=organization_id).select_related("contract")

    if contract_id:
        qs = qs.filter(contract_id=contract_id)
    if status:
        qs = qs.filter(status=status)

    return qs.order_by("-period_year", "-period_month")


def open_period_for(*, organization_id: UUID, contract_id: UUID) -> BillingPeriod | None:
    return BillingPeriod.objects.filter(
        organization_id=organization_id,
        contract_id=contract_id,
        status__in=OPEN_PERIOD_STATUSES,
    ).first()


def uncarried_debt(*, organization_id: UUID, contract_id: UUID) -> int:
    """Debt left on settled periods that no later period has absorbed."""
    return (
        BillingPeriod.objects.filter(
            organization_id=organization_id,
            contract_id=contract_id,
            status=PeriodStatus.SETTLED,
            debt_carried_to__isnull=True,
        ).aggregate(s=Sum("carried_debt"))["s"]
        or 0
    )


def charges_for_period(*, period: BillingPeriod) -> QuerySet[Charge]:
    return Charge.objects.filter(billing_period=period).order_by("charge_date", "created_at")


def expenses_for_period(*, period: BillingPeriod) -> QuerySet[PatientExpense]:
    return PatientExpense.objects.filter(billing_period=period).order_by("expense_date", "created_at")


def payments_filtered(
    *,
    organization_id: UUID,
    contract_id: UUID | None = None,
    period_id: UUID | None = None,
    status: str | None = None,
    method: str | None = None,
) -> QuerySet[Payment]:
    qs = Payment.objects.filter(organization_id=organization_id)

    if contract_id:
        qs = qs.filter(contract_id=contract_id)
    if period_id:
        qs = qs.filter(billing_period_id=period_id)
    if status:
        qs = qs.filter(status=status)
    if method:
        qs = qs.filter(method=method)

    return qs.order_by("-payment_date")


def contract_statement(*, organization_id: UUID, contract_id: UUID) -> Dict[str, Any]:
    """
    What the patient owes (or has in credit) across the contract.
    """
    current = open_period_for(organization_id=organization_id, contract_id=contract_id)
    debt = uncarried_debt(organization_id=organization_id, contract_id=contract_id)
    current_outstanding = current.outstanding if current else 0

    return {
        "contract_id": str(contract_id),
        "open_period_id": str(current.id) if current else None,
        "open_period_balance": current.balance if current else 0,
        "uncarried_debt": debt,
        "outstanding": current_outstanding + debt,
    }
