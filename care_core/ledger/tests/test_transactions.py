from datetime import date

import pytest

from care_core.common.exceptions import InvalidStateError, ValidationError
from care_core.ledger.models import ReferenceType, Transaction, TransactionType
from care_core.ledger.selectors import financial_summary
from care_core.ledger.services import OperationalExpenseService, TransactionService

pytestmark = pytest.mark.django_db


def test_amount_must_be_positive(staff_ctx):
    with pytest.raises(ValidationError):
        TransactionService.record(
            ctx=staff_ctx, transaction_type=TransactionType.REVENUE, amount=0, description="Nothing"
        )


def test_unknown_type_rejected(staff_ctx):
    with pytest.raises(ValidationError):
        TransactionService.record(ctx=staff_ctx, transaction_type="REFUND", amount=10, description="?")


def test_realize_only_once(staff_ctx):
    trx = TransactionService.record(
        ctx=staff_ctx,
        transaction_type=TransactionType.REVENUE,
        amount=100,
        description="Accrued",
        is_realized=False,
    )
    assert trx.realized_at is None

    trx = TransactionService.realize(ctx=staff_ctx, transaction_id=trx.id)
    assert trx.is_realized is True
    assert trx.realized_at is not None

    with pytest.raises(InvalidStateError):
        TransactionService.realize(ctx=staff_ctx, transaction_id=trx.id)


def test_accrual_is_remeasured_not_duplicated(staff_ctx, contract):
    for amount in (300_000, 250_000):
        TransactionService.record_accrual(
            ctx=staff_ctx,
            reference_type=ReferenceType.BILLING_PERIOD,
            reference_id=contract.id,
            amount=amount,
            description="Unrealized",
        )

    accrual = Transaction.objects.get(reference_id=contract.id)
    assert accrual.amount == 250_000
    assert accrual.is_realized is False

    trx = TransactionService.recognize_revenue(
        ctx=staff_ctx,
        reference_type=ReferenceType.BILLING_PERIOD,
        reference_id=contract.id,
        amount=200_000,
        description="Settled",
    )
    assert trx.id == accrual.id
    assert trx.amount == 200_000
    assert trx.is_realized is True


def test_financial_summary_for_a_month(staff_ctx):
    march = date(2025, 3, 15)
    TransactionService.record(
        ctx=staff_ctx, transaction_type=TransactionType.REVENUE, amount=5_000_000, description="Billing",
        transaction_date=march,
    )
    TransactionService.record(
        ctx=staff_ctx, transaction_type=TransactionType.REVENUE, amount=700_000, description="Accrued",
        transaction_date=march, is_realized=False,
    )
    TransactionService.record(
        ctx=staff_ctx, transaction_type=TransactionType.EXPENSE, amount=1_500_000, description="Food",
        category="Food", transaction_date=march,
    )
    TransactionService.record(
        ctx=staff_ctx, transaction_type=TransactionType.EXPENSE, amount=500_000, description="Power",
        category="Utilities", transaction_date=march,
    )
    TransactionService.record(
        ctx=staff_ctx, transaction_type=TransactionType.CAPITAL_INJECTION, amount=10_000_000, description="Owner",
        transaction_date=march,
    )
    # Outside the month
    TransactionService.record(
        ctx=staff_ctx, transaction_type=TransactionType.REVENUE, amount=999, description="April",
        transaction_date=date(2025, 4, 1),
    )

    summary = financial_summary(organization_id=staff_ctx.organization_id, year=2025, month=3)

    assert summary["revenue"] == 5_000_000
    assert summary["expense"] == 2_000_000
    assert summary["net"] == 3_000_000
    assert summary["capital_injection"] == 10_000_000
    assert summary["unrealized_revenue"] == 700_000
    assert summary["expense_by_category"] == [
        {"category": "Food", "total": 1_500_000},
        {"category": "Utilities", "total": 500_000},
    ]
    assert summary["pending"] == {"operational_expenses": 0, "transaction_requests": 0}


def test_financial_summary_counts_pending_items(staff_ctx, expense_workflow):
    OperationalExpenseService.create(ctx=staff_ctx, category="Repairs", description="Door", amount=200_000)

    summary = financial_summary(organization_id=staff_ctx.organization_id, year=2025, month=1)
    assert summary["pending"]["operational_expenses"] == 1
