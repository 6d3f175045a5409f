# care_core/billing/models.py
from __future__ import annotations

from django.db import models
from django.db.models import Q
from django.utils import timezone

from care_core.common.models import ScopedModel
from care_core.contracts.models import Contract


class PeriodStatus(models.TextChoices):
    ACTIVE = "ACTIVE", "Active"            # current period, accepts postings
    OVERDUE = "OVERDUE", "Overdue"          # past due date, payment not complete
    SETTLED = "SETTLED", "Settled"          # closed, final balance recorded
    UNREALIZED = "UNREALIZED", "Unrealized"  # month ended, patient still resident


OPEN_PERIOD_STATUSES = (PeriodStatus.ACTIVE, PeriodStatus.OVERDUE, PeriodStatus.UNREALIZED)


class BillingPeriod(ScopedModel):
    """
    One monthly cycle of a Contract.

    Totals are derived from postings and recomputed on every mutation
    (BillingPeriodService._recalc_totals):
      total_charged  = base_monthly_rate + sum(charges)
      total_expenses = sum(patient expenses)
      total_paid     = sum(VERIFIED payments)
      balance        = total_paid - (total_charged + total_expenses)
    Positive balance = credit (prepaid left), negative = debt.
    """
    code = models.CharField(max_length=32, unique=True)  # PER-YYYYMM-NNN
    contract = models.ForeignKey(Contract, on_delete=models.PROTECT, related_name="billing_periods")

    period_year = models.PositiveSmallIntegerField()
    period_month = models.PositiveSmallIntegerField()
    period_start_date = models.DateField()
    period_end_date = models.DateField()

    base_monthly_rate = models.BigIntegerField()
    nursing_charge = models.BigIntegerField(default=0)
    additional_charges = models.BigIntegerField(default=0)
    total_charged = models.BigIntegerField(default=0)

    total_expenses = models.BigIntegerField(default=0)
    total_paid = models.BigIntegerField(default=0)
    balance = models.BigIntegerField(default=0)

    due_date = models.DateField()

    status = models.CharField(
        max_length=16,
        choices=PeriodStatus.choices,
        default=PeriodStatus.ACTIVE,
        db_index=True,
    )

    settled_at = models.DateTimeField(null=True, blank=True)
    settled_by_user_id = models.BigIntegerField(null=True, blank=True)

    # Debt left at settlement and the period that absorbed it as a CARRIED_DEBT charge
    carried_debt = models.BigIntegerField(default=0)
    debt_carried_to = models.ForeignKey(
        "self",
        on_delete=models.SET_NULL,
        related_name="carried_from",
        null=True,
        blank=True,
    )

    version = models.PositiveIntegerField(default=0)

    class Meta:
        db_table = "billing_period"
        constraints = [
            models.UniqueConstraint(
                fields=["contract"],
                condition=Q(status__in=["ACTIVE", "OVERDUE", "UNREALIZED"]),
                name="uq_open_period_per_contract",
            ),
            models.UniqueConstraint(
                fields=["contract", "period_year", "period_month"],
                name="uq_period_per_contract_month",
            ),
            models.CheckConstraint(
                condition=Q(period_month__gte=1) & Q(period_month__lte=12),
                name="ck_period_month_range",
            ),
        ]
        indexes = [
            models.Index(fields=["organization_id", "status", "due_date"]),
            models.Index(fields=["organization_id", "contract", "period_year", "period_month"]),
        ]

    def __str__(self) -> str:
        return self.code

    @property
    def is_open(self) -> bool:
        return self.status in OPEN_PERIOD_STATUSES

    @property
    def outstanding(self) -> int:
        """Amount the patient still owes on this period (0 when in credit)."""
        return max(0, -self.balance)


class ChargeType(models.TextChoices):
    NURSING = "NURSING", "Nursing"
    DOCTOR = "DOCTOR", "Doctor Visit"
    MEDICATION = "MEDICATION", "Medication"
    EQUIPMENT = "EQUIPMENT", "Equipment"
    CARRIED_DEBT = "CARRIED_DEBT", "Carried Debt"
    OTHER = "OTHER", "Other"


# Only posted by the engine when a period opens
OPENING_CHARGE_TYPES = (ChargeType.NURSING, ChargeType.CARRIED_DEBT)


class Charge(ScopedModel):
    """
    Billable line item. Immutable once created.
    """
    code = models.CharField(max_length=32, unique=True)  # CHG-YYYYMMDD-NNN
    billing_period = models.ForeignKey(BillingPeriod, on_delete=models.PROTECT, related_name="charges")
    contract = models.ForeignKey(Contract, on_delete=models.PROTECT, related_name="charges")

    charge_type = models.CharField(max_length=16, choices=ChargeType.choices, db_index=True)
    description = models.CharField(max_length=255)
    amount = models.BigIntegerField()
    quantity = models.PositiveIntegerField(default=1)
    unit_price = models.BigIntegerField()

    charge_date = models.DateField(default=timezone.localdate)
    is_mandatory = models.BooleanField(default=False)

    # CARRIED_DEBT lines point back at the settled period the debt came from
    source_period = models.ForeignKey(
        BillingPeriod,
        on_delete=models.PROTECT,
        related_name="debt_charges",
        null=True,
        blank=True,
    )

    recorded_by_user_id = models.BigIntegerField(null=True, blank=True)
    notes = models.TextField(blank=True, default="")

    class Meta:
        db_table = "billing_charge"
        constraints = [
            models.CheckConstraint(condition=Q(amount__gt=0), name="ck_charge_amount_positive"),
        ]
        indexes = [
            models.Index(fields=["organization_id", "billing_period"]),
        ]


class PaymentMethod(models.TextChoices):
    CASH = "CASH", "Cash"
    BANK_TRANSFER = "BANK_TRANSFER", "Bank Transfer"


class PatientExpense(ScopedModel):
    """
    Money the facility spends on the patient's behalf, debited from the period balance.
    """
    code = models.CharField(max_length=32, unique=True)  # PEX-YYYYMMDD-NNN
    billing_period = models.ForeignKey(BillingPeriod, on_delete=models.PROTECT, related_name="expenses")
    contract = models.ForeignKey(Contract, on_delete=models.PROTECT, related_name="expenses")

    category = models.CharField(max_length=64)
    description = models.CharField(max_length=255)
    amount = models.BigIntegerField()

    payment_method = models.CharField(max_length=16, choices=PaymentMethod.choices, default=PaymentMethod.CASH)
    bank_account_id = models.UUIDField(null=True, blank=True)

    expense_date = models.DateField(default=timezone.localdate)
    receipt_url = models.URLField(blank=True, default="")

    recorded_by_user_id = models.BigIntegerField(null=True, blank=True)
    notes = models.TextField(blank=True, default="")

    class Meta:
        db_table = "billing_patient_expense"
        constraints = [
            models.CheckConstraint(condition=Q(amount__gt=0), name="ck_patient_expense_amount_positive"),
        ]
        indexes = [
            models.Index(fields=["organization_id", "billing_period"]),
        ]


class PaymentStatus(models.TextChoices):
    PENDING = "PENDING", "Pending Verification"
    VERIFIED = "VERIFIED", "Verified"
    REJECTED = "REJECTED", "Rejected"


class Payment(ScopedModel):
    """
    Money received from the patient/family. Only VERIFIED payments count toward total_paid.
    """
    code = models.CharField(max_length=32, unique=True)  # PAY-YYYYMMDD-NNN
    contract = models.ForeignKey(Contract, on_delete=models.PROTECT, related_name="payments")
    billing_period = models.ForeignKey(
        BillingPeriod,
        on_delete=models.PROTECT,
        related_name="payments",
        null=True,
        blank=True,
    )

    amount = models.BigIntegerField()
    method = models.CharField(max_length=16, choices=PaymentMethod.choices, default=PaymentMethod.CASH)

    bank_account_id = models.UUIDField(null=True, blank=True)
    transfer_reference = models.CharField(max_length=64, blank=True, default="")
    transfer_proof_url = models.URLField(blank=True, default="")

    paid_by = models.CharField(max_length=255)
    payment_date = models.DateTimeField(default=timezone.now)

    status = models.CharField(
        max_length=16,
        choices=PaymentStatus.choices,
        default=PaymentStatus.PENDING,
        db_index=True,
    )
    received_by_user_id = models.BigIntegerField(null=True, blank=True)
    verified_by_user_id = models.BigIntegerField(null=True, blank=True)
    verified_at = models.DateTimeField(null=True, blank=True)
    rejection_reason = models.TextField(blank=True, default="")

    notes = models.TextField(blank=True, default="")

    class Meta:
        db_table = "billing_payment"
        constraints = [
            models.CheckConstraint(condition=Q(amount__gt=0), name="ck_payment_amount_positive"),
        ]
        indexes = [
            models.Index(fields=["organization_id", "contract", "payment_date"]),
            models.Index(fields=["organization_id", "status"]),
        ]
