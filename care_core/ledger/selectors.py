# care_core/ledger/selectors.py
from __future__ import annotations

import calendar
from datetime import date
from typing import Any, Dict
from uuid import UUID

from django.db.models import Count, Q, QuerySet, Sum

from care_core.ledger.models import (
    ApprovalState,
    OperationalExpense,
    RequestStatus,
    Transaction,
    TransactionRequest,
    TransactionType,
)


def transactions_filtered(
    *,
    organization_id: UUID,
    transaction_type: str | None = None,
    is_realized: bool | None = None,
    date_from: date | None = None,
    date_to: date | None = None,
) -> QuerySet[Transaction]:
    qs = Transaction.objects.filter(organization_id=organization_id)

    if transaction_type:
        qs = qs.filter(transaction_type=transaction_type)
    if is_realized is not None:
        qs = qs.filter(is_realized=is_realized)
    if date_from:
        qs = qs.filter(transaction_date__gte=date_from)
    if date_to:
        qs = qs.filter(transaction_date__lte=date_to)

    return qs.order_by("-transaction_date", "-created_at")


def operational_expenses_filtered(*, organization_id: UUID, approval_status: str | None = None) -> QuerySet[OperationalExpense]:
    qs = OperationalExpense.objects.filter(organization_id=organization_id)
    if approval_status:
        qs = qs.filter(approval_status=approval_status)
    return qs.order_by("-expense_date", "-created_at")


def transaction_requests_filtered(*, organization_id: UUID, status: str | None = None) -> QuerySet[TransactionRequest]:
    qs = TransactionRequest.objects.filter(organization_id=organization_id)
    if status:
        qs = qs.filter(status=status)
    return qs.order_by("-request_date", "-created_at")


def financial_summary(*, organization_id: UUID, year: int, month: int) -> Dict[str, Any]:
    """
    Dashboard figures for one month: realized revenue/expense/capital, net,
    unrealized revenue still accruing and items waiting on approval.
    """
    first = date(year, month, 1)
    last = date(year, month, calendar.monthrange(year, month)[1])

    month_qs = Transaction.objects.filter(
        organization_id=organization_id,
        transaction_date__gte=first,
        transaction_date__lte=last,
    )
    totals = month_qs.aggregate(
        revenue=Sum("amount", filter=Q(transaction_type=TransactionType.REVENUE, is_realized=True)),
        expense=Sum("amount", filter=Q(transaction_type=TransactionType.EXPENSE, is_realized=True)),
        capital=Sum("amount", filter=Q(transaction_type=TransactionType.CAPITAL_INJECTION, is_realized=True)),
        unrealized=Sum("amount", filter=Q(transaction_type=TransactionType.REVENUE, is_realized=False)),
    )
    revenue = totals["revenue"] or 0
    expense = totals["expense"] or 0

    pending = {
        "operational_expenses": OperationalExpense.objects.filter(
            organization_id=organization_id, approval_status=ApprovalState.PENDING
        ).aggregate(n=Count("id"))["n"],
        "transaction_requests": TransactionRequest.objects.filter(
            organization_id=organization_id, status=RequestStatus.PENDING
        ).aggregate(n=Count("id"))["n"],
    }

    by_category = list(
        month_qs.filter(transaction_type=TransactionType.EXPENSE, is_realized=True)
        .values("category")
        .annotate(total=Sum("amount"))
        .order_by("-total")
    )

    return {
        "year": year,
        "month": month,
        "revenue": revenue,
        "expense": expense,
        "capital_injection": totals["capital"] or 0,
        "net": revenue - expense,
        "unrealized_revenue": totals["unrealized"] or 0,
        "expense_by_category": by_category,
        "pending": pending,
    }
