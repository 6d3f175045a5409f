# care_core/approvals/models.py
from __future__ import annotations

import uuid

from django.db import models
from django.db.models import Q
from django.utils import timezone

from care_core.common.exceptions import InvalidStateError
from care_core.common.models import ScopedModel, TimeStampedModel


class ResourceType(models.TextChoices):
    OPERATIONAL_EXPENSE = "OPERATIONAL_EXPENSE", "Operational Expense"
    PAYMENT_VERIFICATION = "PAYMENT_VERIFICATION", "Payment Verification"
    TRANSACTION_REQUEST = "TRANSACTION_REQUEST", "Transaction Request"


class ApprovalStatus(models.TextChoices):
    PENDING = "PENDING", "Pending"
    APPROVED = "APPROVED", "Approved"
    REJECTED = "REJECTED", "Rejected"
    CANCELLED = "CANCELLED", "Cancelled"


TERMINAL_STATUSES = (ApprovalStatus.APPROVED, ApprovalStatus.REJECTED, ApprovalStatus.CANCELLED)


class ActionType(models.TextChoices):
    APPROVED = "APPROVED", "Approved"
    REJECTED = "REJECTED", "Rejected"
    REQUESTED_CHANGES = "REQUESTED_CHANGES", "Requested Changes"


class ApprovalWorkflow(ScopedModel):
    """
    Named, reusable template of ordered role-gated steps for one resource type.
    """
    name = models.CharField(max_length=128)
    resource_type = models.CharField(max_length=32, choices=ResourceType.choices, db_index=True)
    description = models.TextField(blank=True, default="")
    is_active = models.BooleanField(default=True)

    class Meta:
        db_table = "approvals_workflow"
        constraints = [
            models.UniqueConstraint(fields=["organization_id", "name"], name="uq_workflow_org_name"),
        ]
        indexes = [
            models.Index(fields=["organization_id", "resource_type", "is_active"]),
        ]

    def __str__(self) -> str:
        return self.name


class ApprovalStep(TimeStampedModel):
    """
    conditions: list of {"field", "operator", "value"} predicates, all of which
    must hold for the step to apply (see approvals.conditions).
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    workflow = models.ForeignKey(ApprovalWorkflow, on_delete=models.CASCADE, related_name="steps")
    step_order = models.PositiveIntegerField()
    role_name = models.CharField(max_length=64)
    conditions = models.JSONField(default=list, blank=True)
    timeout_hours = models.PositiveIntegerField(null=True, blank=True)

    class Meta:
        db_table = "approvals_step"
        ordering = ["step_order"]
        constraints = [
            models.UniqueConstraint(fields=["workflow", "step_order"], name="uq_step_order_per_workflow"),
        ]

    def __str__(self) -> str:
        return f"{self.workflow_id}#{self.step_order}:{self.role_name}"

    def parsed_conditions(self):
        from care_core.approvals.conditions import parse_conditions

        return parse_conditions(self.conditions)


class Approval(ScopedModel):
    """
    One running (or concluded) instance of a workflow against a resource.

    The resource is referenced loosely (resource_type + resource_id); the engine
    never owns it. `attributes` is the snapshot step conditions are evaluated against.
    """
    resource_type = models.CharField(max_length=32, choices=ResourceType.choices, db_index=True)
    resource_id = models.UUIDField(db_index=True)

    workflow = models.ForeignKey(ApprovalWorkflow, on_delete=models.PROTECT, related_name="approvals")
    current_step_order = models.PositiveIntegerField(default=1)

    status = models.CharField(
        max_length=16,
        choices=ApprovalStatus.choices,
        default=ApprovalStatus.PENDING,
        db_index=True,
    )

    requested_by_user_id = models.BigIntegerField(null=True, blank=True)
    requested_at = models.DateTimeField(default=timezone.now)
    completed_at = models.DateTimeField(null=True, blank=True)
    timeout_at = models.DateTimeField(null=True, blank=True, db_index=True)

    attributes = models.JSONField(default=dict, blank=True)

    version = models.PositiveIntegerField(default=0)

    class Meta:
        db_table = "approvals_approval"
        constraints = [
            models.UniqueConstraint(
                fields=["organization_id", "resource_type", "resource_id"],
                condition=Q(status="PENDING"),
                name="uq_open_approval_per_resource",
            ),
        ]
        indexes = [
            models.Index(fields=["organization_id", "status", "current_step_order"]),
            models.Index(fields=["status", "timeout_at"]),
        ]

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


class ApprovalAction(models.Model):
    """
    Append-only audit record of one decision at one step.
    actor_user_id is NULL for system actions (timeouts).
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    approval = models.ForeignKey(Approval, on_delete=models.CASCADE, related_name="actions")
    step_order = models.PositiveIntegerField()

    action = models.CharField(max_length=24, choices=ActionType.choices)
    actor_user_id = models.BigIntegerField(null=True, blank=True)
    is_system = models.BooleanField(default=False)
    comments = models.TextField(blank=True, default="")

    actioned_at = models.DateTimeField(default=timezone.now, db_index=True)

    class Meta:
        db_table = "approvals_action"
        ordering = ["actioned_at"]
        indexes = [
            models.Index(fields=["approval", "step_order"]),
        ]

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise InvalidStateError("Approval actions are immutable.", entity_id=self.pk)
        return super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise InvalidStateError("Approval actions cannot be deleted.", entity_id=self.pk)
