import uuid
from datetime import date

import pytest

from care_core.billing.models import PaymentMethod, PeriodStatus
from care_core.billing.selectors import contract_statement
from care_core.billing.services import BillingPeriodService, PaymentService
from care_core.common.events import subscribe, unsubscribe
from care_core.common.exceptions import ConflictError, InvalidStateError, PaymentIncompleteError, ValidationError
from care_core.contracts.models import ContractStatus
from care_core.contracts.services import CONTRACT_COMPLETED, ContractService

pytestmark = pytest.mark.django_db


@pytest.fixture
def completed_events():
    seen = []

    def _handler(payload):
        seen.append(payload)

    subscribe(CONTRACT_COMPLETED)(_handler)
    yield seen
    unsubscribe(CONTRACT_COMPLETED, _handler)


def _open(ctx, contract, *, prepaid, month=1, nursing=200_000):
    return BillingPeriodService.open_period(
        ctx=ctx,
        contract_id=contract.id,
        year=2025,
        month=month,
        prepaid_amount=prepaid,
        paid_by="Family",
        nursing_charge=nursing,
    )


def test_register_contract(staff_ctx, contract):
    assert contract.status == ContractStatus.ACTIVE
    assert contract.code.startswith("CTR-")
    assert contract.registered_by_user_id == staff_ctx.user_id


def test_patient_has_at_most_one_active_contract(staff_ctx, contract):
    with pytest.raises(ConflictError):
        ContractService.register(
            ctx=staff_ctx,
            patient_id=contract.patient_id,
            room_id=uuid.uuid4(),
            monthly_rate=1_500_000,
            start_date=date(2025, 2, 1),
        )


@pytest.mark.parametrize(
    "overrides",
    [{"monthly_rate": 0}, {"nursing_rate": -1}, {"payment_due_day": 29}, {"end_date": date(2024, 12, 31)}],
)
def test_register_validates_terms(staff_ctx, overrides):
    kwargs = {
        "patient_id": uuid.uuid4(),
        "room_id": uuid.uuid4(),
        "monthly_rate": 2_000_000,
        "start_date": date(2025, 1, 1),
        **overrides,
    }
    with pytest.raises(ValidationError):
        ContractService.register(ctx=staff_ctx, **kwargs)


def test_checkout_blocked_while_open_period_owes(staff_ctx, contract):
    _open(staff_ctx, contract, prepaid=2_000_000)

    with pytest.raises(PaymentIncompleteError) as exc:
        ContractService.complete(ctx=staff_ctx, contract_id=contract.id, checkout_date=date(2025, 1, 20))

    assert exc.value.outstanding == 200_000
    contract.refresh_from_db()
    assert contract.status == ContractStatus.ACTIVE


def test_checkout_blocked_by_uncarried_settled_debt(staff_ctx, contract):
    period = _open(staff_ctx, contract, prepaid=2_000_000)
    BillingPeriodService.settle_period(ctx=staff_ctx, period_id=period.id)

    with pytest.raises(PaymentIncompleteError) as exc:
        ContractService.complete(ctx=staff_ctx, contract_id=contract.id)
    assert exc.value.outstanding == 200_000


def test_checkout_settles_the_open_period(staff_ctx, contract, completed_events, django_capture_on_commit_callbacks):
    period = _open(staff_ctx, contract, prepaid=2_000_000)
    PaymentService.record_payment(
        ctx=staff_ctx, contract_id=contract.id, amount=200_000, method=PaymentMethod.CASH, paid_by="Family"
    )

    with django_capture_on_commit_callbacks(execute=True):
        completed = ContractService.complete(ctx=staff_ctx, contract_id=contract.id, checkout_date=date(2025, 1, 25))

    assert completed.status == ContractStatus.COMPLETED
    assert completed.end_date == date(2025, 1, 25)
    period.refresh_from_db()
    assert period.status == PeriodStatus.SETTLED

    assert len(completed_events) == 1
    assert completed_events[0]["room_id"] == str(contract.room_id)
    assert completed_events[0]["contract_id"] == str(contract.id)

    with pytest.raises(InvalidStateError):
        ContractService.complete(ctx=staff_ctx, contract_id=contract.id)


def test_checkout_blocked_while_a_transfer_is_pending(staff_ctx, bendahara_ctx, contract):
    period = _open(staff_ctx, contract, prepaid=2_500_000)
    transfer = PaymentService.record_payment(
        ctx=staff_ctx,
        contract_id=contract.id,
        amount=300_000,
        method=PaymentMethod.BANK_TRANSFER,
        paid_by="Son",
    )

    with pytest.raises(InvalidStateError) as exc:
        ContractService.complete(ctx=staff_ctx, contract_id=contract.id)
    assert exc.value.context["pending_payments"] == 1

    contract.refresh_from_db()
    period.refresh_from_db()
    assert contract.status == ContractStatus.ACTIVE
    assert period.status == PeriodStatus.ACTIVE

    PaymentService.verify_payment(ctx=bendahara_ctx, payment_id=transfer.id)
    completed = ContractService.complete(ctx=staff_ctx, contract_id=contract.id)
    assert completed.status == ContractStatus.COMPLETED


def test_terminate_requires_reason_and_no_open_period(staff_ctx, contract):
    with pytest.raises(ValidationError):
        ContractService.terminate(ctx=staff_ctx, contract_id=contract.id, reason=" ")

    period = _open(staff_ctx, contract, prepaid=2_200_000)
    with pytest.raises(InvalidStateError):
        ContractService.terminate(ctx=staff_ctx, contract_id=contract.id, reason="Family request")

    BillingPeriodService.settle_period(ctx=staff_ctx, period_id=period.id)
    terminated = ContractService.terminate(ctx=staff_ctx, contract_id=contract.id, reason="Family request")
    assert terminated.status == ContractStatus.TERMINATED
    assert terminated.termination_reason == "Family request"


def test_statement_sums_open_and_carried_debt(staff_ctx, contract):
    january = _open(staff_ctx, contract, prepaid=2_000_000)
    BillingPeriodService.settle_period(ctx=staff_ctx, period_id=january.id)

    statement = contract_statement(organization_id=staff_ctx.organization_id, contract_id=contract.id)
    assert statement["open_period_id"] is None
    assert statement["uncarried_debt"] == 200_000
    assert statement["outstanding"] == 200_000

    february = BillingPeriodService.open_next_period(ctx=staff_ctx, contract_id=contract.id, paid_by="Family")
    statement = contract_statement(organization_id=staff_ctx.organization_id, contract_id=contract.id)
    assert statement["open_period_id"] == str(february.id)
    assert statement["uncarried_debt"] == 0
    # carried 200,000 was paid through the opening payment; only the new month is owed
    assert statement["outstanding"] == 2_000_000
