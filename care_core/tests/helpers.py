# care_core/tests/helpers.py
from care_core.billing.models import BillingPeriod
from care_core.billing.services import compute_totals


def scoped(organization_id):
    return {"HTTP_X_ORGANIZATION_ID": str(organization_id)}


def assert_balance_invariant(period: BillingPeriod) -> None:
    """
    Stored totals equal postings and balance = paid - (charged + expenses).
    """
    period.refresh_from_db()
    assert period.balance == period.total_paid - (period.total_charged + period.total_expenses)
    computed = compute_totals(period)
    for field, value in computed.items():
        assert getattr(period, field) == value, field
