# care_core/contracts/models.py
from __future__ import annotations

from django.db import models
from django.db.models import Q

from care_core.common.models import ScopedModel


class ContractStatus(models.TextChoices):
    ACTIVE = "ACTIVE", "Active"
    COMPLETED = "COMPLETED", "Completed"
    TERMINATED = "TERMINATED", "Terminated"


class Contract(ScopedModel):
    """
    A patient's stay agreement. Owns the monthly billing periods.

    Patient and room live outside the finance core and are referenced by UUID.
    COMPLETED and TERMINATED are terminal (enforced in services).
    """
    code = models.CharField(max_length=32, unique=True)  # CTR-YYYYMMDD-NNN

    patient_id = models.UUIDField(db_index=True)
    room_id = models.UUIDField(db_index=True)

    monthly_rate = models.BigIntegerField()
    nursing_rate = models.BigIntegerField(default=0)  # mandatory nursing charge per period
    payment_due_day = models.PositiveSmallIntegerField(default=1)

    start_date = models.DateField()
    end_date = models.DateField(null=True, blank=True)  # NULL = ongoing

    status = models.CharField(
        max_length=16,
        choices=ContractStatus.choices,
        default=ContractStatus.ACTIVE,
        db_index=True,
    )

    registered_by_user_id = models.BigIntegerField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    terminated_at = models.DateTimeField(null=True, blank=True)
    terminated_by_user_id = models.BigIntegerField(null=True, blank=True)
    termination_reason = models.TextField(blank=True, default="")

    notes = models.TextField(blank=True, default="")

    class Meta:
        db_table = "contracts_contract"
        constraints = [
            models.CheckConstraint(condition=Q(monthly_rate__gt=0), name="ck_contract_monthly_rate_positive"),
            models.CheckConstraint(condition=Q(nursing_rate__gte=0), name="ck_contract_nursing_rate_non_negative"),
            models.CheckConstraint(
                condition=Q(payment_due_day__gte=1) & Q(payment_due_day__lte=28),
                name="ck_contract_due_day_range",
            ),
        ]
        indexes = [
            models.Index(fields=["organization_id", "status"]),
            models.Index(fields=["organization_id", "patient_id"]),
        ]

    def __str__(self) -> str:
        return self.code

    @property
    def is_active(self) -> bool:
        return self.status == ContractStatus.ACTIVE
