# care_core/ledger/models.py
from __future__ import annotations

from django.db import models
from django.db.models import Q
from django.utils import timezone

from care_core.common.models import ScopedModel


class TransactionType(models.TextChoices):
    REVENUE = "REVENUE", "Revenue"
    EXPENSE = "EXPENSE", "Expense"
    CAPITAL_INJECTION = "CAPITAL_INJECTION", "Capital Injection"
    TRANSFER = "TRANSFER", "Transfer"


class AccountType(models.TextChoices):
    CASH = "CASH", "Cash"
    BANK = "BANK", "Bank"


class ReferenceType(models.TextChoices):
    BILLING_PERIOD = "BILLING_PERIOD", "Billing Period"
    PATIENT_PAYMENT = "PATIENT_PAYMENT", "Patient Payment"
    PATIENT_EXPENSE = "PATIENT_EXPENSE", "Patient Expense"
    OPERATIONAL_EXPENSE = "OPERATIONAL_EXPENSE", "Operational Expense"
    TRANSACTION_REQUEST = "TRANSACTION_REQUEST", "Transaction Request"
    CAPITAL = "CAPITAL", "Capital"


class Transaction(ScopedModel):
    """
    Organization-wide ledger entry.

    reference_type/reference_id is a loose pointer to the record that produced it.
    Unrealized entries (revenue accruing while the patient is still resident)
    become realized exactly once.
    """
    code = models.CharField(max_length=32, unique=True)  # TRX-YYYYMMDD-NNN

    transaction_type = models.CharField(max_length=32, choices=TransactionType.choices, db_index=True)
    category = models.CharField(max_length=64, blank=True, default="")

    amount = models.BigIntegerField()

    account_type = models.CharField(max_length=8, choices=AccountType.choices, default=AccountType.CASH)
    bank_account_id = models.UUIDField(null=True, blank=True)

    reference_type = models.CharField(max_length=32, choices=ReferenceType.choices, blank=True, default="")
    reference_id = models.UUIDField(null=True, blank=True)

    transaction_date = models.DateField(default=timezone.localdate)
    description = models.CharField(max_length=255)
    proof_document_url = models.URLField(blank=True, default="")

    is_realized = models.BooleanField(default=True)
    realized_at = models.DateTimeField(null=True, blank=True)

    created_by_user_id = models.BigIntegerField(null=True, blank=True)

    class Meta:
        db_table = "ledger_transaction"
        constraints = [
            models.CheckConstraint(condition=Q(amount__gt=0), name="ck_transaction_amount_positive"),
        ]
        indexes = [
            models.Index(fields=["organization_id", "transaction_type", "transaction_date"]),
            models.Index(fields=["reference_type", "reference_id"]),
        ]

    def __str__(self) -> str:
        return self.code


class ExpensePaymentMethod(models.TextChoices):
    CASH = "CASH", "Cash"
    BANK_TRANSFER = "BANK_TRANSFER", "Bank Transfer"


class ApprovalState(models.TextChoices):
    PENDING = "PENDING", "Pending"
    APPROVED = "APPROVED", "Approved"
    REJECTED = "REJECTED", "Rejected"


class OperationalExpense(ScopedModel):
    """
    Facility spending not tied to a patient. Held PENDING until its approval
    concludes; an approved expense is linked to the EXPENSE transaction it produced.
    """
    code = models.CharField(max_length=32, unique=True)  # OEX-YYYYMMDD-NNN
    category = models.CharField(max_length=64)

    description = models.CharField(max_length=255)
    amount = models.BigIntegerField()

    payment_method = models.CharField(
        max_length=16,
        choices=ExpensePaymentMethod.choices,
        default=ExpensePaymentMethod.CASH,
    )
    bank_account_id = models.UUIDField(null=True, blank=True)

    expense_date = models.DateField(default=timezone.localdate)
    receipt_url = models.URLField(blank=True, default="")

    requires_approval = models.BooleanField(default=True)
    approval_status = models.CharField(
        max_length=16,
        choices=ApprovalState.choices,
        default=ApprovalState.PENDING,
        db_index=True,
    )

    transaction = models.ForeignKey(
        Transaction,
        on_delete=models.SET_NULL,
        related_name="+",
        null=True,
        blank=True,
    )
    recorded_by_user_id = models.BigIntegerField(null=True, blank=True)
    notes = models.TextField(blank=True, default="")

    class Meta:
        db_table = "ledger_operational_expense"
        constraints = [
            models.CheckConstraint(condition=Q(amount__gt=0), name="ck_operational_expense_amount_positive"),
        ]
        indexes = [
            models.Index(fields=["organization_id", "approval_status"]),
        ]


class RequestStatus(models.TextChoices):
    PENDING = "PENDING", "Pending"
    APPROVED = "APPROVED", "Approved"
    REJECTED = "REJECTED", "Rejected"
    CANCELLED = "CANCELLED", "Cancelled"


class TransactionRequest(ScopedModel):
    """
    A request to book an EXPENSE / REVENUE / CAPITAL_INJECTION once approved.
    """
    code = models.CharField(max_length=32, unique=True)  # REQ-YYYYMMDD-NNN

    transaction_type = models.CharField(max_length=32, choices=TransactionType.choices)
    category = models.CharField(max_length=64, blank=True, default="")
    amount = models.BigIntegerField()

    account_type = models.CharField(max_length=8, choices=AccountType.choices, default=AccountType.CASH)
    bank_account_id = models.UUIDField(null=True, blank=True)

    description = models.CharField(max_length=255)
    request_date = models.DateField(default=timezone.localdate)

    status = models.CharField(
        max_length=16,
        choices=RequestStatus.choices,
        default=RequestStatus.PENDING,
        db_index=True,
    )
    transaction = models.ForeignKey(
        Transaction,
        on_delete=models.SET_NULL,
        related_name="+",
        null=True,
        blank=True,
    )
    requested_by_user_id = models.BigIntegerField(null=True, blank=True)

    class Meta:
        db_table = "ledger_transaction_request"
        constraints = [
            models.CheckConstraint(condition=Q(amount__gt=0), name="ck_transaction_request_amount_positive"),
        ]
        indexes = [
            models.Index(fields=["organization_id", "status"]),
        ]
