# care_core/billing/services.py
from __future__ import annotations

import calendar
import logging
from dataclasses import dataclass
from datetime import date
from typing import Any, Dict, Iterable, List, Optional
from uuid import UUID

from django.conf import settings
from django.db import IntegrityError, transaction
from django.db.models import F, Q, Sum
from django.utils import timezone

from care_core.approvals.gate import ApprovalGate
from care_core.approvals.models import ResourceType
from care_core.audit.services import AuditService
from care_core.billing.models import (
    OPEN_PERIOD_STATUSES,
    OPENING_CHARGE_TYPES,
    BillingPeriod,
    Charge,
    ChargeType,
    PatientExpense,
    Payment,
    PaymentMethod,
    PaymentStatus,
    PeriodStatus,
)
from care_core.common.codes import next_code
from care_core.common.context import ActorContext
from care_core.common.db import compare_and_set, retrying_atomic
from care_core.common.events import publish_on_commit
from care_core.common.exceptions import (
    ConflictError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from care_core.common.permissions import require_any_role
from care_core.contracts.models import Contract, ContractStatus
from care_core.ledger.models import ReferenceType, Transaction
from care_core.ledger.services import TransactionService

logger = logging.getLogger(__name__)

PERIOD_SETTLED = "billing.period_settled"
PAYMENT_VERIFIED = "payment.verified"

REVENUE_CATEGORY = "PATIENT_BILLING"

TOTAL_FIELDS = [
    "nursing_charge",
    "additional_charges",
    "total_charged",
    "total_expenses",
    "total_paid",
    "balance",
]


@dataclass(frozen=True)
class SettlementResult:
    period: BillingPeriod
    revenue_transaction: Optional[Transaction]


def _month_bounds(year: int, month: int) -> tuple[date, date]:
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, 1), date(year, month, last_day)


def lock_contract(organization_id: UUID, contract_id: UUID) -> Contract:
    try:
        return Contract.objects.select_for_update().get(id=contract_id, organization_id=organization_id)
    except Contract.DoesNotExist:
        raise NotFoundError("Contract not found.", entity_id=contract_id)


def _lock_period(organization_id: UUID, period_id: UUID) -> BillingPeriod:
    try:
        return (
            BillingPeriod.objects.select_for_update()
            .select_related("contract")
            .get(id=period_id, organization_id=organization_id)
        )
    except BillingPeriod.DoesNotExist:
        raise NotFoundError("Billing period not found.", entity_id=period_id)


def lock_open_period(organization_id: UUID, contract_id: UUID) -> Optional[BillingPeriod]:
    return (
        BillingPeriod.objects.select_for_update()
        .select_related("contract")
        .filter(organization_id=organization_id, contract_id=contract_id, status__in=OPEN_PERIOD_STATUSES)
        .first()
    )


def compute_totals(period: BillingPeriod) -> Dict[str, int]:
    """
    Period totals recomputed from its postings.
    """
    charges = Charge.objects.filter(billing_period=period).aggregate(
        nursing=Sum("amount", filter=Q(charge_type=ChargeType.NURSING)),
        other=Sum("amount", filter=~Q(charge_type=ChargeType.NURSING)),
    )
    nursing = charges["nursing"] or 0
    additional = charges["other"] or 0

    total_expenses = PatientExpense.objects.filter(billing_period=period).aggregate(s=Sum("amount"))["s"] or 0
    total_paid = (
        Payment.objects.filter(billing_period=period, status=PaymentStatus.VERIFIED).aggregate(s=Sum("amount"))["s"]
        or 0
    )

    total_charged = period.base_monthly_rate + nursing + additional
    return {
        "nursing_charge": nursing,
        "additional_charges": additional,
        "total_charged": total_charged,
        "total_expenses": total_expenses,
        "total_paid": total_paid,
        "balance": total_paid - (total_charged + total_expenses),
    }


class BillingPeriodService:
    @staticmethod
    def _recalc_totals(period: BillingPeriod) -> None:
        for field, value in compute_totals(period).items():
            setattr(period, field, value)

    @staticmethod
    def _ensure_accepts_postings(period: BillingPeriod) -> None:
        if period.status == PeriodStatus.SETTLED:
            raise InvalidStateError("Billing period is settled.", entity_id=period.id, state=period.status)

    @staticmethod
    @retrying_atomic
    def open_period(
        *,
        ctx: ActorContext,
        contract_id: UUID,
        year: int,
        month: int,
        prepaid_amount: int = 0,
        payment_method: str = PaymentMethod.CASH,
        paid_by: str = "",
        carried_debt_period_ids: Optional[Iterable[UUID]] = None,
        nursing_charge: int | None = None,
        transfer_reference: str = "",
        bank_account_id: UUID | None = None,
    ) -> BillingPeriod:
        """
        Open a monthly period for an ACTIVE contract.

        Seeds the period with the mandatory nursing charge, one CARRIED_DEBT line per
        settled period whose debt has not been carried yet, and an opening payment
        of prepaid + carried debt (CASH: verified now, BANK_TRANSFER: pending).
        carried_debt_period_ids=None carries every uncarried debt of the contract.
        """
        if not 1 <= int(month) <= 12:
            raise ValidationError("Month must be between 1 and 12.", month=month)
        if int(year) < 2000:
            raise ValidationError("Year is out of range.", year=year)
        if prepaid_amount is None or int(prepaid_amount) < 0:
            raise ValidationError("Prepaid amount must be >= 0.", prepaid_amount=prepaid_amount)
        if nursing_charge is not None and int(nursing_charge) < 0:
            raise ValidationError("Nursing charge must be >= 0.", nursing_charge=nursing_charge)
        if payment_method not in PaymentMethod.values:
            raise ValidationError(f"Unknown payment method: {payment_method}.")

        contract = lock_contract(ctx.organization_id, contract_id)
        if contract.status != ContractStatus.ACTIVE:
            raise InvalidStateError("Contract is not active.", entity_id=contract.id, state=contract.status)

        if lock_open_period(ctx.organization_id, contract.id) is not None:
            raise ConflictError("Contract already has an open billing period.", entity_id=contract.id)
        if BillingPeriod.objects.filter(contract=contract, period_year=year, period_month=month).exists():
            raise ConflictError("A billing period for this month already exists.", entity_id=contract.id)

        eligible = BillingPeriod.objects.select_for_update().filter(
            contract=contract,
            status=PeriodStatus.SETTLED,
            carried_debt__gt=0,
            debt_carried_to__isnull=True,
        )
        if carried_debt_period_ids is not None:
            wanted = {UUID(str(pid)) for pid in carried_debt_period_ids}
            sources = list(eligible.filter(id__in=wanted).order_by("period_year", "period_month"))
            if len(sources) != len(wanted):
                raise ValidationError("Some periods have no uncarried debt to carry.", contract_id=contract.id)
        else:
            sources = list(eligible.order_by("period_year", "period_month"))

        start, end = _month_bounds(year, month)
        due = date(year, month, min(contract.payment_due_day, end.day))

        try:
            with transaction.atomic():
                period = BillingPeriod.objects.create(
                    organization_id=ctx.organization_id,
                    code=next_code(BillingPeriod, prefix="PER", on=start, stamp_format="%Y%m"),
                    contract=contract,
                    period_year=year,
                    period_month=month,
                    period_start_date=start,
                    period_end_date=end,
                    base_monthly_rate=contract.monthly_rate,
                    due_date=due,
                    status=PeriodStatus.ACTIVE,
                )
        except IntegrityError:
            raise ConflictError("Contract already has an open billing period.", entity_id=contract.id)

        nursing = contract.nursing_rate if nursing_charge is None else int(nursing_charge)
        if nursing > 0:
            Charge.objects.create(
                organization_id=ctx.organization_id,
                code=next_code(Charge, prefix="CHG"),
                billing_period=period,
                contract=contract,
                charge_type=ChargeType.NURSING,
                description=f"Nursing care {start:%B %Y}",
                amount=nursing,
                quantity=1,
                unit_price=nursing,
                charge_date=start,
                is_mandatory=True,
                recorded_by_user_id=ctx.user_id,
            )

        carried_total = 0
        for source in sources:
            Charge.objects.create(
                organization_id=ctx.organization_id,
                code=next_code(Charge, prefix="CHG"),
                billing_period=period,
                contract=contract,
                charge_type=ChargeType.CARRIED_DEBT,
                description=f"Unpaid balance from {source.code}",
                amount=source.carried_debt,
                quantity=1,
                unit_price=source.carried_debt,
                charge_date=start,
                is_mandatory=True,
                source_period=source,
                recorded_by_user_id=ctx.user_id,
            )
            source.debt_carried_to = period
            compare_and_set(source, fields=["debt_carried_to"])
            carried_total += source.carried_debt

        opening_amount = int(prepaid_amount) + carried_total
        opening_payment = None
        if opening_amount > 0:
            opening_payment = PaymentService._create_payment(
                ctx=ctx,
                contract=contract,
                period=period,
                amount=opening_amount,
                method=payment_method,
                paid_by=paid_by or "",
                transfer_reference=transfer_reference,
                bank_account_id=bank_account_id,
                notes=f"Opening payment for {start:%B %Y}",
            )

        BillingPeriodService._recalc_totals(period)
        compare_and_set(period, fields=TOTAL_FIELDS)

        if opening_payment is not None and opening_payment.status == PaymentStatus.PENDING:
            PaymentService._gate_transfer(ctx=ctx, payment=opening_payment)
            period.refresh_from_db()

        AuditService.log(
            ctx=ctx,
            event_code="BILLING_PERIOD_OPENED",
            entity_type="BillingPeriod",
            entity_id=period.id,
            metadata={
                "contract_id": str(contract.id),
                "year": year,
                "month": month,
                "opening_payment": opening_amount,
                "carried_debt": carried_total,
                "carried_from": [str(s.id) for s in sources],
            },
        )
        logger.info("Opened period %s for contract %s (balance %s)", period.code, contract.code, period.balance)
        return period

    @staticmethod
    @retrying_atomic
    def open_next_period(
        *,
        ctx: ActorContext,
        contract_id: UUID,
        prepaid_amount: int = 0,
        payment_method: str = PaymentMethod.CASH,
        paid_by: str = "",
        nursing_charge: int | None = None,
        transfer_reference: str = "",
        bank_account_id: UUID | None = None,
    ) -> BillingPeriod:
        """
        Open the month after the contract's latest period (or its start month),
        carrying every uncarried debt.
        """
        contract = lock_contract(ctx.organization_id, contract_id)
        latest = (
            BillingPeriod.objects.filter(contract=contract)
            .order_by("-period_year", "-period_month")
            .first()
        )
        if latest is None:
            year, month = contract.start_date.year, contract.start_date.month
        elif latest.period_month == 12:
            year, month = latest.period_year + 1, 1
        else:
            year, month = latest.period_year, latest.period_month + 1

        return BillingPeriodService.open_period(
            ctx=ctx,
            contract_id=contract.id,
            year=year,
            month=month,
            prepaid_amount=prepaid_amount,
            payment_method=payment_method,
            paid_by=paid_by,
            carried_debt_period_ids=None,
            nursing_charge=nursing_charge,
            transfer_reference=transfer_reference,
            bank_account_id=bank_account_id,
        )

    @staticmethod
    @retrying_atomic
    def post_charge(
        *,
        ctx: ActorContext,
        period_id: UUID,
        charge_type: str,
        description: str,
        unit_price: int,
        quantity: int = 1,
        charge_date: date | None = None,
        notes: str = "",
    ) -> Charge:
        if charge_type not in ChargeType.values:
            raise ValidationError(f"Unknown charge type: {charge_type}.", charge_type=charge_type)
        if charge_type in OPENING_CHARGE_TYPES:
            raise ValidationError(
                "Mandatory charges are only posted when a period opens.",
                charge_type=charge_type,
            )
        if quantity is None or int(quantity) < 1:
            raise ValidationError("Quantity must be >= 1.", quantity=quantity)
        if unit_price is None or int(unit_price) <= 0:
            raise ValidationError("Charge amount must be > 0.", unit_price=unit_price)
        if not (description or "").strip():
            raise ValidationError("Description is required.")

        period = _lock_period(ctx.organization_id, period_id)
        BillingPeriodService._ensure_accepts_postings(period)
        if period.status == PeriodStatus.OVERDUE and not settings.BILLING_ALLOW_CHARGES_ON_OVERDUE:
            raise InvalidStateError(
                "Overdue periods do not accept new charges.",
                entity_id=period.id,
                state=period.status,
            )

        quantity, unit_price = int(quantity), int(unit_price)
        charge = Charge.objects.create(
            organization_id=ctx.organization_id,
            code=next_code(Charge, prefix="CHG"),
            billing_period=period,
            contract_id=period.contract_id,
            charge_type=charge_type,
            description=description.strip(),
            amount=quantity * unit_price,
            quantity=quantity,
            unit_price=unit_price,
            charge_date=charge_date or timezone.localdate(),
            is_mandatory=False,
            recorded_by_user_id=ctx.user_id,
            notes=notes or "",
        )

        BillingPeriodService._recalc_totals(period)
        compare_and_set(period, fields=TOTAL_FIELDS)

        AuditService.log(
            ctx=ctx,
            event_code="BILLING_CHARGE_POSTED",
            entity_type="BillingPeriod",
            entity_id=period.id,
            metadata={"charge_id": str(charge.id), "charge_type": charge_type, "amount": charge.amount},
        )
        return charge

    @staticmethod
    @retrying_atomic
    def post_expense(
        *,
        ctx: ActorContext,
        period_id: UUID,
        category: str,
        description: str,
        amount: int,
        payment_method: str = PaymentMethod.CASH,
        bank_account_id: UUID | None = None,
        expense_date: date | None = None,
        receipt_url: str = "",
        notes: str = "",
    ) -> PatientExpense:
        if amount is None or int(amount) <= 0:
            raise ValidationError("Expense amount must be > 0.", amount=amount)
        if not (category or "").strip():
            raise ValidationError("Category is required.")
        if payment_method not in PaymentMethod.values:
            raise ValidationError(f"Unknown payment method: {payment_method}.")

        period = _lock_period(ctx.organization_id, period_id)
        BillingPeriodService._ensure_accepts_postings(period)

        expense = PatientExpense.objects.create(
            organization_id=ctx.organization_id,
            code=next_code(PatientExpense, prefix="PEX"),
            billing_period=period,
            contract_id=period.contract_id,
            category=category.strip(),
            description=description,
            amount=int(amount),
            payment_method=payment_method,
            bank_account_id=bank_account_id,
            expense_date=expense_date or timezone.localdate(),
            receipt_url=receipt_url or "",
            recorded_by_user_id=ctx.user_id,
            notes=notes or "",
        )

        BillingPeriodService._recalc_totals(period)
        compare_and_set(period, fields=TOTAL_FIELDS)

        AuditService.log(
            ctx=ctx,
            event_code="BILLING_EXPENSE_POSTED",
            entity_type="BillingPeriod",
            entity_id=period.id,
            metadata={"expense_id": str(expense.id), "amount": expense.amount},
        )
        return expense

    @staticmethod
    @retrying_atomic
    def settle_period(*, ctx: ActorContext, period_id: UUID) -> SettlementResult:
        """
        Close the period. A positive balance becomes exactly one realized REVENUE
        transaction; a negative one is kept as carried_debt for the next period.
        """
        period = _lock_period(ctx.organization_id, period_id)
        if period.status not in OPEN_PERIOD_STATUSES:
            raise InvalidStateError("Billing period is already settled.", entity_id=period.id, state=period.status)

        pending = period.payments.filter(status=PaymentStatus.PENDING).count()
        if pending:
            raise InvalidStateError(
                "Pending payments must be verified or rejected before settlement.",
                entity_id=period.id,
                pending_payments=pending,
            )

        BillingPeriodService._recalc_totals(period)

        revenue = None
        if period.balance > 0:
            revenue = TransactionService.recognize_revenue(
                ctx=ctx,
                reference_type=ReferenceType.BILLING_PERIOD,
                reference_id=period.id,
                amount=period.balance,
                description=f"Settlement of {period.code}",
                category=REVENUE_CATEGORY,
            )
        else:
            TransactionService.discard_accrual(
                ctx=ctx,
                reference_type=ReferenceType.BILLING_PERIOD,
                reference_id=period.id,
            )

        period.carried_debt = period.outstanding
        period.status = PeriodStatus.SETTLED
        period.settled_at = timezone.now()
        period.settled_by_user_id = ctx.user_id
        compare_and_set(
            period,
            fields=TOTAL_FIELDS + ["carried_debt", "status", "settled_at", "settled_by_user_id"],
        )

        AuditService.log(
            ctx=ctx,
            event_code="BILLING_PERIOD_SETTLED",
            entity_type="BillingPeriod",
            entity_id=period.id,
            metadata={
                "balance": period.balance,
                "carried_debt": period.carried_debt,
                "revenue_transaction_id": str(revenue.id) if revenue else None,
            },
        )
        publish_on_commit(
            PERIOD_SETTLED,
            {
                "organization_id": str(period.organization_id),
                "period_id": str(period.id),
                "contract_id": str(period.contract_id),
                "balance": period.balance,
                "carried_debt": period.carried_debt,
                "revenue_transaction_id": str(revenue.id) if revenue else None,
            },
        )
        logger.info("Settled period %s (balance %s)", period.code, period.balance)
        return SettlementResult(period=period, revenue_transaction=revenue)

    @staticmethod
    @transaction.atomic
    def mark_overdue_periods(*, today: date | None = None, organization_id: UUID | None = None) -> int:
        """ACTIVE periods past their due date that still carry debt become OVERDUE."""
        today = today or timezone.localdate()
        qs = BillingPeriod.objects.filter(status=PeriodStatus.ACTIVE, due_date__lt=today, balance__lt=0)
        if organization_id:
            qs = qs.filter(organization_id=organization_id)

        updated = qs.update(status=PeriodStatus.OVERDUE, version=F("version") + 1, updated_at=timezone.now())
        if updated:
            logger.info("Marked %s period(s) overdue as of %s", updated, today)
        return updated

    @staticmethod
    def mark_unrealized_periods(*, today: date | None = None, organization_id: UUID | None = None) -> List[UUID]:
        """
        Periods whose month has ended while the patient is still resident become
        UNREALIZED; a positive balance is accrued as unrealized revenue.
        """
        today = today or timezone.localdate()
        qs = BillingPeriod.objects.filter(
            status__in=[PeriodStatus.ACTIVE, PeriodStatus.OVERDUE],
            period_end_date__lt=today,
            contract__status=ContractStatus.ACTIVE,
        )
        if organization_id:
            qs = qs.filter(organization_id=organization_id)

        marked: List[UUID] = []
        for org_id, period_id in qs.values_list("organization_id", "id"):
            try:
                if BillingPeriodService._mark_unrealized_one(organization_id=org_id, period_id=period_id, today=today):
                    marked.append(period_id)
            except InvalidStateError as exc:
                logger.info("Skipping period %s: %s", period_id, exc)
        return marked

    @staticmethod
    @retrying_atomic
    def _mark_unrealized_one(*, organization_id: UUID, period_id: UUID, today: date) -> bool:
        period = _lock_period(organization_id, period_id)
        if period.status not in (PeriodStatus.ACTIVE, PeriodStatus.OVERDUE) or period.period_end_date >= today:
            return False

        ctx = ActorContext.system(organization_id)
        BillingPeriodService._recalc_totals(period)
        period.status = PeriodStatus.UNREALIZED
        compare_and_set(period, fields=TOTAL_FIELDS + ["status"])

        if period.balance > 0:
            TransactionService.record_accrual(
                ctx=ctx,
                reference_type=ReferenceType.BILLING_PERIOD,
                reference_id=period.id,
                amount=period.balance,
                description=f"Unrealized revenue for {period.code}",
                category=REVENUE_CATEGORY,
            )
        logger.info("Period %s is unrealized (balance %s)", period.code, period.balance)
        return True

    @staticmethod
    @transaction.atomic
    def reconcile_period(*, organization_id: UUID, period_id: UUID, repair: bool = True) -> Dict[str, Any]:
        """
        Compare stored totals with postings. Open periods are repaired when
        repair=True; settled periods are only reported.
        """
        period = _lock_period(organization_id, period_id)
        computed = compute_totals(period)

        drift = {
            field: {"stored": getattr(period, field), "computed": value}
            for field, value in computed.items()
            if getattr(period, field) != value
        }

        repaired = False
        if drift:
            logger.warning("Billing period %s drifted: %s", period.code, drift)
            if repair and period.is_open:
                for field, value in computed.items():
                    setattr(period, field, value)
                compare_and_set(period, fields=TOTAL_FIELDS)
                repaired = True

        return {"period_id": str(period.id), "drift": drift, "repaired": repaired}


class PaymentService:
    @staticmethod
    def _create_payment(
        *,
        ctx: ActorContext,
        contract: Contract,
        period: BillingPeriod,
        amount: int,
        method: str,
        paid_by: str,
        transfer_reference: str = "",
        transfer_proof_url: str = "",
        bank_account_id: UUID | None = None,
        notes: str = "",
    ) -> Payment:
        now = timezone.now()
        verified = method == PaymentMethod.CASH

        payment = Payment.objects.create(
            organization_id=ctx.organization_id,
            code=next_code(Payment, prefix="PAY"),
            contract=contract,
            billing_period=period,
            amount=amount,
            method=method,
            bank_account_id=bank_account_id,
            transfer_reference=transfer_reference or "",
            transfer_proof_url=transfer_proof_url or "",
            paid_by=paid_by,
            payment_date=now,
            status=PaymentStatus.VERIFIED if verified else PaymentStatus.PENDING,
            received_by_user_id=ctx.user_id,
            verified_by_user_id=ctx.user_id if verified else None,
            verified_at=now if verified else None,
            notes=notes or "",
        )
        if verified:
            PaymentService._publish_verified(payment)
        return payment

    @staticmethod
    def _publish_verified(payment: Payment) -> None:
        publish_on_commit(
            PAYMENT_VERIFIED,
            {
                "organization_id": str(payment.organization_id),
                "payment_id": str(payment.id),
                "contract_id": str(payment.contract_id),
                "period_id": str(payment.billing_period_id) if payment.billing_period_id else None,
                "amount": payment.amount,
            },
        )

    @staticmethod
    def _gate_transfer(*, ctx: ActorContext, payment: Payment) -> None:
        if not ApprovalGate.has_workflow(
            organization_id=ctx.organization_id,
            resource_type=ResourceType.PAYMENT_VERIFICATION,
        ):
            return

        ApprovalGate.request_gate(
            ctx=ctx,
            resource_type=ResourceType.PAYMENT_VERIFICATION,
            resource_id=payment.id,
            attributes={"amount": payment.amount, "method": payment.method},
        )
        payment.refresh_from_db()

    @staticmethod
    @retrying_atomic
    def record_payment(
        *,
        ctx: ActorContext,
        contract_id: UUID,
        amount: int,
        method: str,
        paid_by: str,
        period_id: UUID | None = None,
        transfer_reference: str = "",
        transfer_proof_url: str = "",
        bank_account_id: UUID | None = None,
        notes: str = "",
    ) -> Payment:
        if amount is None or int(amount) <= 0:
            raise ValidationError("Payment amount must be > 0.", amount=amount)
        if method not in PaymentMethod.values:
            raise ValidationError(f"Unknown payment method: {method}.")
        if not (paid_by or "").strip():
            raise ValidationError("Payer name is required.")
        amount = int(amount)

        if period_id is not None:
            period = _lock_period(ctx.organization_id, period_id)
            if period.contract_id != contract_id:
                raise ValidationError("Billing period belongs to another contract.", entity_id=period.id)
        else:
            period = lock_open_period(ctx.organization_id, contract_id)
            if period is None:
                raise InvalidStateError("Contract has no open billing period.", entity_id=contract_id)

        contract = period.contract
        if contract.status != ContractStatus.ACTIVE:
            raise InvalidStateError("Contract is not active.", entity_id=contract.id, state=contract.status)
        BillingPeriodService._ensure_accepts_postings(period)

        BillingPeriodService._recalc_totals(period)
        if method == PaymentMethod.CASH and amount > period.outstanding:
            raise ValidationError(
                "Cash payment exceeds the outstanding balance.",
                entity_id=period.id,
                outstanding=period.outstanding,
            )

        payment = PaymentService._create_payment(
            ctx=ctx,
            contract=contract,
            period=period,
            amount=amount,
            method=method,
            paid_by=paid_by.strip(),
            transfer_reference=transfer_reference,
            transfer_proof_url=transfer_proof_url,
            bank_account_id=bank_account_id,
            notes=notes,
        )

        BillingPeriodService._recalc_totals(period)
        compare_and_set(period, fields=TOTAL_FIELDS)

        AuditService.log(
            ctx=ctx,
            event_code="PAYMENT_RECORDED",
            entity_type="Payment",
            entity_id=payment.id,
            metadata={"period_id": str(period.id), "amount": amount, "method": method, "status": payment.status},
        )

        if payment.status == PaymentStatus.PENDING:
            PaymentService._gate_transfer(ctx=ctx, payment=payment)

        return payment

    @staticmethod
    def _ensure_not_gated(ctx: ActorContext, payment: Payment) -> None:
        approval = ApprovalGate.pending_approval(
            organization_id=ctx.organization_id,
            resource_type=ResourceType.PAYMENT_VERIFICATION,
            resource_id=payment.id,
        )
        if approval is not None:
            raise InvalidStateError(
                "Payment is awaiting approval; decide it through the approval workflow.",
                entity_id=payment.id,
                approval_id=approval.id,
            )

    @staticmethod
    def _get_payment(organization_id: UUID, payment_id: UUID) -> Payment:
        try:
            return Payment.objects.get(id=payment_id, organization_id=organization_id)
        except Payment.DoesNotExist:
            raise NotFoundError("Payment not found.", entity_id=payment_id)

    @staticmethod
    @retrying_atomic
    def verify_payment(*, ctx: ActorContext, payment_id: UUID) -> Payment:
        require_any_role(ctx, settings.BILLING_PAYMENT_VERIFIER_ROLES, action="verify payments")

        payment = PaymentService._get_payment(ctx.organization_id, payment_id)
        if payment.status != PaymentStatus.PENDING:
            raise InvalidStateError("Only pending payments can be verified.", entity_id=payment.id, state=payment.status)
        PaymentService._ensure_not_gated(ctx, payment)

        return PaymentService.apply_verification(ctx=ctx, payment_id=payment.id)

    @staticmethod
    @retrying_atomic
    def reject_payment(*, ctx: ActorContext, payment_id: UUID, reason: str) -> Payment:
        require_any_role(ctx, settings.BILLING_PAYMENT_VERIFIER_ROLES, action="reject payments")
        if not (reason or "").strip():
            raise ValidationError("A rejection reason is required.")

        payment = PaymentService._get_payment(ctx.organization_id, payment_id)
        if payment.status != PaymentStatus.PENDING:
            raise InvalidStateError("Only pending payments can be rejected.", entity_id=payment.id, state=payment.status)
        PaymentService._ensure_not_gated(ctx, payment)

        return PaymentService.apply_rejection(ctx=ctx, payment_id=payment.id, reason=reason.strip())

    @staticmethod
    @transaction.atomic
    def apply_verification(*, ctx: ActorContext, payment_id: UUID) -> Payment:
        """
        PENDING -> VERIFIED and re-total the period. No-op for an already
        VERIFIED payment.
        """
        payment = PaymentService._get_payment(ctx.organization_id, payment_id)

        # Period before payment, same order as every other posting
        period = _lock_period(ctx.organization_id, payment.billing_period_id) if payment.billing_period_id else None
        payment = Payment.objects.select_for_update().get(id=payment.id)

        if payment.status == PaymentStatus.VERIFIED:
            return payment
        if payment.status != PaymentStatus.PENDING:
            raise InvalidStateError("Only pending payments can be verified.", entity_id=payment.id, state=payment.status)
        if period is not None:
            BillingPeriodService._ensure_accepts_postings(period)

        payment.status = PaymentStatus.VERIFIED
        payment.verified_by_user_id = ctx.user_id
        payment.verified_at = timezone.now()
        payment.save(update_fields=["status", "verified_by_user_id", "verified_at", "updated_at"])

        if period is not None:
            BillingPeriodService._recalc_totals(period)
            compare_and_set(period, fields=TOTAL_FIELDS)

        AuditService.log(
            ctx=ctx,
            event_code="PAYMENT_VERIFIED",
            entity_type="Payment",
            entity_id=payment.id,
            metadata={"amount": payment.amount, "period_id": str(period.id) if period else None},
        )
        PaymentService._publish_verified(payment)
        logger.info("Payment %s verified", payment.code)
        return payment

    @staticmethod
    @transaction.atomic
    def apply_rejection(*, ctx: ActorContext, payment_id: UUID, reason: str) -> Payment:
        """PENDING -> REJECTED; the period balance is untouched. No-op when already REJECTED."""
        payment = PaymentService._get_payment(ctx.organization_id, payment_id)
        payment = Payment.objects.select_for_update().get(id=payment.id)

        if payment.status == PaymentStatus.REJECTED:
            return payment
        if payment.status != PaymentStatus.PENDING:
            raise InvalidStateError("Only pending payments can be rejected.", entity_id=payment.id, state=payment.status)

        payment.status = PaymentStatus.REJECTED
        payment.rejection_reason = reason
        payment.save(update_fields=["status", "rejection_reason", "updated_at"])

        AuditService.log(
            ctx=ctx,
            event_code="PAYMENT_REJECTED",
            entity_type="Payment",
            entity_id=payment.id,
            metadata={"amount": payment.amount, "reason": reason},
        )
        logger.info("Payment %s rejected", payment.code)
        return payment
