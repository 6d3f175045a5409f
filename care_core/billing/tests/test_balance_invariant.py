import random
from datetime import date

import pytest

from care_core.billing.models import ChargeType, PaymentMethod, PaymentStatus
from care_core.billing.services import BillingPeriodService, PaymentService
from care_core.tests.helpers import assert_balance_invariant

pytestmark = pytest.mark.django_db

CHARGE_TYPES = [ChargeType.MEDICATION, ChargeType.DOCTOR, ChargeType.EQUIPMENT, ChargeType.OTHER]


@pytest.mark.parametrize("seed", [7, 42, 2025])
def test_balance_always_matches_postings(seed, staff_ctx, bendahara_ctx, contract):
    rng = random.Random(seed)
    period = BillingPeriodService.open_period(
        ctx=staff_ctx,
        contract_id=contract.id,
        year=2025,
        month=1,
        prepaid_amount=rng.randrange(0, 3_000_000, 10_000),
        paid_by="Family",
        nursing_charge=rng.randrange(0, 500_000, 10_000),
    )
    pending = []

    for _ in range(30):
        op = rng.choice(["charge", "expense", "cash", "transfer", "verify", "reject"])

        if op == "charge":
            BillingPeriodService.post_charge(
                ctx=staff_ctx,
                period_id=period.id,
                charge_type=rng.choice(CHARGE_TYPES),
                description="Random charge",
                quantity=rng.randint(1, 3),
                unit_price=rng.randrange(10_000, 200_000, 5_000),
            )
        elif op == "expense":
            BillingPeriodService.post_expense(
                ctx=staff_ctx,
                period_id=period.id,
                category="Misc",
                description="Random expense",
                amount=rng.randrange(5_000, 150_000, 5_000),
            )
        elif op == "cash":
            period.refresh_from_db()
            if period.outstanding > 0:
                PaymentService.record_payment(
                    ctx=staff_ctx,
                    contract_id=contract.id,
                    amount=rng.randint(1, period.outstanding),
                    method=PaymentMethod.CASH,
                    paid_by="Family",
                )
        elif op == "transfer":
            pending.append(
                PaymentService.record_payment(
                    ctx=staff_ctx,
                    contract_id=contract.id,
                    amount=rng.randrange(50_000, 1_000_000, 10_000),
                    method=PaymentMethod.BANK_TRANSFER,
                    paid_by="Family",
                )
            )
        elif pending:
            payment = pending.pop(rng.randrange(len(pending)))
            if op == "verify":
                PaymentService.verify_payment(ctx=bendahara_ctx, payment_id=payment.id)
            else:
                PaymentService.reject_payment(ctx=bendahara_ctx, payment_id=payment.id, reason="Random reject")

        assert_balance_invariant(period)

    for payment in pending:
        PaymentService.reject_payment(ctx=bendahara_ctx, payment_id=payment.id, reason="Unmatched")
        assert_balance_invariant(period)

    period.refresh_from_db()
    verified = sum(p.amount for p in period.payments.filter(status=PaymentStatus.VERIFIED))
    assert period.total_paid == verified

    result = BillingPeriodService.settle_period(ctx=staff_ctx, period_id=period.id)
    assert_balance_invariant(result.period)
    if result.period.balance > 0:
        assert result.revenue_transaction.amount == result.period.balance
    else:
        assert result.revenue_transaction is None
        assert result.period.carried_debt == -result.period.balance
