import pytest

from care_core.approvals.models import Approval, ApprovalStatus, ResourceType
from care_core.approvals.services import ApprovalService, WorkflowService
from care_core.billing.models import PaymentMethod, PaymentStatus, PeriodStatus
from care_core.billing.services import PAYMENT_VERIFIED, BillingPeriodService, PaymentService
from care_core.common.events import subscribe, unsubscribe
from care_core.common.exceptions import ForbiddenError, InvalidStateError, ValidationError
from care_core.tests.helpers import assert_balance_invariant

pytestmark = pytest.mark.django_db


@pytest.fixture
def period(staff_ctx, contract):
    # balance -200,000
    return BillingPeriodService.open_period(
        ctx=staff_ctx,
        contract_id=contract.id,
        year=2025,
        month=1,
        prepaid_amount=2_000_000,
        paid_by="Family",
        nursing_charge=200_000,
    )


@pytest.fixture
def verification_workflow(admin_ctx):
    return WorkflowService.create_workflow(
        ctx=admin_ctx,
        name="Transfer verification",
        resource_type=ResourceType.PAYMENT_VERIFICATION,
        steps=[{"step_order": 1, "role_name": "BENDAHARA"}],
    )


@pytest.fixture
def verified_events():
    seen = []

    def _handler(payload):
        seen.append(payload)

    subscribe(PAYMENT_VERIFIED)(_handler)
    yield seen
    unsubscribe(PAYMENT_VERIFIED, _handler)


def _transfer(ctx, contract, amount=750_000):
    return PaymentService.record_payment(
        ctx=ctx,
        contract_id=contract.id,
        amount=amount,
        method=PaymentMethod.BANK_TRANSFER,
        paid_by="Son",
        transfer_reference="TRF-001",
    )


def test_bank_transfer_moves_balance_only_when_verified(staff_ctx, bendahara_ctx, contract, period):
    payment = _transfer(staff_ctx, contract)
    assert payment.status == PaymentStatus.PENDING

    period.refresh_from_db()
    assert period.balance == -200_000

    PaymentService.verify_payment(ctx=bendahara_ctx, payment_id=payment.id)

    payment.refresh_from_db()
    assert payment.status == PaymentStatus.VERIFIED
    assert payment.verified_by_user_id == bendahara_ctx.user_id
    assert payment.verified_at is not None

    period.refresh_from_db()
    assert period.balance == -200_000 + 750_000
    assert_balance_invariant(period)


def test_rejected_transfer_never_touches_balance(staff_ctx, bendahara_ctx, contract, period):
    payment = _transfer(staff_ctx, contract)

    PaymentService.reject_payment(ctx=bendahara_ctx, payment_id=payment.id, reason="Transfer not found")

    payment.refresh_from_db()
    assert payment.status == PaymentStatus.REJECTED
    assert payment.rejection_reason == "Transfer not found"

    period.refresh_from_db()
    assert period.balance == -200_000

    with pytest.raises(InvalidStateError):
        PaymentService.verify_payment(ctx=bendahara_ctx, payment_id=payment.id)


def test_transfer_may_exceed_outstanding(staff_ctx, bendahara_ctx, contract, period):
    payment = _transfer(staff_ctx, contract, amount=5_000_000)
    PaymentService.verify_payment(ctx=bendahara_ctx, payment_id=payment.id)

    period.refresh_from_db()
    assert period.balance == 4_800_000


def test_only_verifier_roles_decide_transfers(staff_ctx, contract, period):
    payment = _transfer(staff_ctx, contract)

    with pytest.raises(ForbiddenError):
        PaymentService.verify_payment(ctx=staff_ctx, payment_id=payment.id)
    with pytest.raises(ForbiddenError):
        PaymentService.reject_payment(ctx=staff_ctx, payment_id=payment.id, reason="nope")


def test_reject_requires_reason(staff_ctx, bendahara_ctx, contract, period):
    payment = _transfer(staff_ctx, contract)

    with pytest.raises(ValidationError):
        PaymentService.reject_payment(ctx=bendahara_ctx, payment_id=payment.id, reason="  ")


def test_verified_payment_cannot_be_verified_again(staff_ctx, bendahara_ctx, contract, period):
    payment = _transfer(staff_ctx, contract)
    PaymentService.verify_payment(ctx=bendahara_ctx, payment_id=payment.id)

    with pytest.raises(InvalidStateError):
        PaymentService.verify_payment(ctx=bendahara_ctx, payment_id=payment.id)

    # the gate-facing entry point is idempotent instead
    again = PaymentService.apply_verification(ctx=bendahara_ctx, payment_id=payment.id)
    assert again.status == PaymentStatus.VERIFIED
    period.refresh_from_db()
    assert period.balance == 550_000


def test_settlement_waits_for_pending_transfers(staff_ctx, bendahara_ctx, contract, period, verification_workflow):
    payment = _transfer(staff_ctx, contract)

    with pytest.raises(InvalidStateError) as exc:
        BillingPeriodService.settle_period(ctx=staff_ctx, period_id=period.id)
    assert exc.value.context["pending_payments"] == 1

    period.refresh_from_db()
    assert period.status == PeriodStatus.ACTIVE

    # the gated transfer can still be decided, after which settlement goes through
    approval = Approval.objects.get(resource_type=ResourceType.PAYMENT_VERIFICATION, resource_id=payment.id)
    ApprovalService.act(ctx=bendahara_ctx, approval_id=approval.id, action="APPROVED")

    payment.refresh_from_db()
    assert payment.status == PaymentStatus.VERIFIED

    result = BillingPeriodService.settle_period(ctx=staff_ctx, period_id=period.id)
    assert result.period.carried_debt == 0
    assert result.revenue_transaction.amount == 550_000


def test_rejected_transfer_no_longer_blocks_settlement(staff_ctx, bendahara_ctx, contract, period):
    payment = _transfer(staff_ctx, contract)
    PaymentService.reject_payment(ctx=bendahara_ctx, payment_id=payment.id, reason="Not received")

    result = BillingPeriodService.settle_period(ctx=staff_ctx, period_id=period.id)
    assert result.period.carried_debt == 200_000


def test_payment_requires_open_period(staff_ctx, contract):
    with pytest.raises(InvalidStateError):
        PaymentService.record_payment(
            ctx=staff_ctx,
            contract_id=contract.id,
            amount=100_000,
            method=PaymentMethod.CASH,
            paid_by="Family",
        )


@pytest.mark.parametrize("amount", [0, -1])
def test_payment_amount_must_be_positive(staff_ctx, contract, period, amount):
    with pytest.raises(ValidationError):
        PaymentService.record_payment(
            ctx=staff_ctx,
            contract_id=contract.id,
            amount=amount,
            method=PaymentMethod.CASH,
            paid_by="Family",
        )


def test_cash_payment_publishes_verified_event(
    staff_ctx, contract, period, verified_events, django_capture_on_commit_callbacks
):
    with django_capture_on_commit_callbacks(execute=True):
        payment = PaymentService.record_payment(
            ctx=staff_ctx,
            contract_id=contract.id,
            amount=100_000,
            method=PaymentMethod.CASH,
            paid_by="Family",
        )

    assert payment.status == PaymentStatus.VERIFIED
    assert [e["payment_id"] for e in verified_events] == [str(payment.id)]
    assert verified_events[0]["amount"] == 100_000


def test_gated_transfer_is_decided_through_the_approval(
    staff_ctx, bendahara_ctx, contract, period, verification_workflow
):
    payment = _transfer(staff_ctx, contract)
    approval = Approval.objects.get(resource_type=ResourceType.PAYMENT_VERIFICATION, resource_id=payment.id)
    assert approval.status == ApprovalStatus.PENDING
    assert approval.attributes["amount"] == 750_000

    with pytest.raises(InvalidStateError):
        PaymentService.verify_payment(ctx=bendahara_ctx, payment_id=payment.id)

    ApprovalService.act(ctx=bendahara_ctx, approval_id=approval.id, action="APPROVED")

    payment.refresh_from_db()
    assert payment.status == PaymentStatus.VERIFIED
    assert payment.verified_by_user_id == bendahara_ctx.user_id
    period.refresh_from_db()
    assert period.balance == 550_000


def test_gated_transfer_rejected_through_the_approval(
    staff_ctx, bendahara_ctx, contract, period, verification_workflow
):
    payment = _transfer(staff_ctx, contract)
    approval = Approval.objects.get(resource_id=payment.id)

    ApprovalService.act(
        ctx=bendahara_ctx,
        approval_id=approval.id,
        action="REJECTED",
        comments="No matching mutation on the statement",
    )

    payment.refresh_from_db()
    assert payment.status == PaymentStatus.REJECTED
    assert payment.rejection_reason == "Rejected in approval."
    period.refresh_from_db()
    assert period.balance == -200_000


def test_cash_payments_bypass_the_verification_workflow(staff_ctx, contract, period, verification_workflow):
    payment = PaymentService.record_payment(
        ctx=staff_ctx,
        contract_id=contract.id,
        amount=200_000,
        method=PaymentMethod.CASH,
        paid_by="Family",
    )

    assert payment.status == PaymentStatus.VERIFIED
    assert not Approval.objects.filter(resource_id=payment.id).exists()
